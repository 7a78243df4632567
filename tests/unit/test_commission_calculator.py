"""
Tests for breakdown building and overrides (no database).

Covers the worked scenarios for a solo partner, a full chain with rounding
remainder, and a level 2 override.
"""

import pytest

from app.core.errors import InvalidAmount, InvalidOverride, NoReferrerChain
from app.services.commission_calculator import apply_override, build_breakdown
from app.utils.money import Money


@pytest.fixture
def full_breakdown():
    return build_breakdown("deal-1", Money.parse("333.33"), ("ref", "up2", "up3"))


class TestBuildBreakdown:

    def test_solo_partner_gets_level_one_only(self):
        breakdown = build_breakdown("deal-1", Money.parse("1000.00"), ("ref",))

        assert len(breakdown.lines) == 1
        line = breakdown.lines[0]
        assert (line.level, line.recipient_id, line.role) == (1, "ref", "Direct Referrer")
        assert str(line.percentage) == "60"
        assert str(line.auto_amount) == "600.00"
        assert line.final_amount == line.auto_amount
        assert line.overridden is False
        assert str(breakdown.total_distributed) == "600.00"
        assert str(breakdown.remainder) == "400.00"

    def test_full_chain_with_rounding(self, full_breakdown):
        assert [str(l.auto_amount) for l in full_breakdown.lines] == ["200.00", "66.67", "33.33"]
        assert [l.recipient_id for l in full_breakdown.lines] == ["ref", "up2", "up3"]
        assert str(full_breakdown.total_distributed) == "300.00"
        assert str(full_breakdown.remainder) == "33.33"

    def test_two_level_chain(self):
        breakdown = build_breakdown("deal-1", Money.parse("100.00"), ("ref", "up2"))

        assert [l.role for l in breakdown.lines] == ["Direct Referrer", "Level 2 Upline"]
        assert str(breakdown.total_distributed) == "80.00"

    def test_non_positive_total(self):
        with pytest.raises(InvalidAmount):
            build_breakdown("deal-1", Money.zero(), ("ref",))

    def test_empty_chain(self):
        with pytest.raises(NoReferrerChain):
            build_breakdown("deal-1", Money.parse("10.00"), ())


class TestApplyOverride:

    def test_override_level_two(self, full_breakdown):
        updated = apply_override(full_breakdown, 2, "100.00")

        level1, level2, level3 = updated.lines
        assert str(level2.final_amount) == "100.00"
        assert str(level2.auto_amount) == "66.67"
        assert level2.overridden is True
        assert level1 == full_breakdown.lines[0]
        assert level3 == full_breakdown.lines[2]
        assert str(updated.total_distributed) == "333.33"

    def test_remainder_is_unchanged(self, full_breakdown):
        updated = apply_override(full_breakdown, 1, "10.00")

        assert updated.remainder == full_breakdown.remainder

    def test_original_breakdown_is_untouched(self, full_breakdown):
        apply_override(full_breakdown, 2, "100.00")

        assert str(full_breakdown.lines[1].final_amount) == "66.67"
        assert full_breakdown.lines[1].overridden is False

    def test_zero_is_allowed(self, full_breakdown):
        updated = apply_override(full_breakdown, 3, "0")

        assert updated.lines[2].final_amount == Money.zero()
        assert updated.lines[2].overridden is True
        assert str(updated.total_distributed) == "266.67"

    def test_negative_is_rejected(self, full_breakdown):
        with pytest.raises(InvalidAmount):
            apply_override(full_breakdown, 2, "-1.00")

    def test_unknown_level(self):
        breakdown = build_breakdown("deal-1", Money.parse("10.00"), ("ref",))

        with pytest.raises(InvalidOverride):
            apply_override(breakdown, 3, "1.00")

    def test_overrides_never_change_other_lines(self, full_breakdown):
        updated = full_breakdown
        for level, amount in ((1, "1.00"), (3, "999.99"), (2, "0.01")):
            before = {l.level: l for l in updated.lines if l.level != level}
            updated = apply_override(updated, level, amount)
            after = {l.level: l for l in updated.lines if l.level != level}
            assert before == after
