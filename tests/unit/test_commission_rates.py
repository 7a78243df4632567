"""Tests for the tiered base-commission table and level percentages."""

from decimal import Decimal

import pytest

from app.core.errors import UnknownBusinessCategory, ValidationFailed
from app.services.commission_rates import (
    DEFAULT_BRACKETS,
    LEVEL_PERCENTAGES,
    MAX_CHAIN_DEPTH,
    RateBracket,
    base_commission,
    level_percentage,
)


class TestBaseCommission:

    def test_volume_inside_bracket(self):
        assert base_commission("hospitality", Decimal("120000")) == Decimal("500.00")

    def test_bracket_bounds_are_inclusive(self):
        assert base_commission("small_trader", Decimal("5000")) == Decimal("150.00")
        assert base_commission("small_trader", Decimal("50000")) == Decimal("150.00")

    def test_volume_below_every_bracket_uses_nearest(self):
        assert base_commission("multisite", Decimal("100")) == Decimal("5000.00")

    def test_volume_above_every_bracket_uses_nearest(self):
        assert base_commission("small_trader", Decimal("90000")) == Decimal("150.00")

    def test_nearest_bracket_between_two(self):
        brackets = [
            RateBracket("retail", Decimal("0"), Decimal("100"), Decimal("10")),
            RateBracket("retail", Decimal("200"), Decimal("300"), Decimal("20")),
        ]
        assert base_commission("retail", Decimal("180"), brackets) == Decimal("20")
        assert base_commission("retail", Decimal("120"), brackets) == Decimal("10")

    def test_tie_goes_to_lower_bracket(self):
        brackets = [
            RateBracket("retail", Decimal("200"), Decimal("300"), Decimal("20")),
            RateBracket("retail", Decimal("0"), Decimal("100"), Decimal("10")),
        ]
        assert base_commission("retail", Decimal("150"), brackets) == Decimal("10")

    def test_unknown_category(self):
        with pytest.raises(UnknownBusinessCategory):
            base_commission("casino", Decimal("1000"))

    def test_default_table_has_three_categories(self):
        assert {b.category for b in DEFAULT_BRACKETS} == {"small_trader", "hospitality", "multisite"}


class TestLevelPercentages:

    def test_fixed_split(self):
        assert [level_percentage(level) for level in (1, 2, 3)] == [
            Decimal("60"), Decimal("20"), Decimal("10"),
        ]

    def test_depth_matches_levels(self):
        assert MAX_CHAIN_DEPTH == len(LEVEL_PERCENTAGES) == 3

    def test_unknown_level(self):
        with pytest.raises(ValidationFailed):
            level_percentage(4)
