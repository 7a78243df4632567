"""Tests for deal numbers and payment references."""

import re
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from app.core.config import Settings
from app.services.number_generator import NumberGenerator

FIXED_DATE = datetime(2026, 10, 17, tzinfo=timezone.utc)


class TestGenerate:

    def test_deal_number_template(self):
        assert NumberGenerator.generate("RF-{YEAR}-{NUMBER:05}", 42, FIXED_DATE) == "RF-2026-00042"

    def test_short_year_and_date_tokens(self):
        result = NumberGenerator.generate("{YEAR:2}{MONTH}{DAY}-{NUMBER}", 7, FIXED_DATE)
        assert result == "261017-7"

    def test_number_wider_than_padding(self):
        assert NumberGenerator.generate("RF-{NUMBER:03}", 12345, FIXED_DATE) == "RF-12345"


class TestPaymentReference:

    def test_format(self):
        reference = NumberGenerator.payment_reference("PAY", FIXED_DATE)
        assert re.fullmatch(r"PAY-20261017-\d{6}", reference)

    def test_custom_prefix(self):
        assert NumberGenerator.payment_reference("COM", FIXED_DATE).startswith("COM-20261017-")


class TestValidateFormat:

    def test_valid_template(self):
        assert NumberGenerator.validate_format("RF-{YEAR}-{NUMBER:05}") == (True, None)

    def test_missing_number_token(self):
        is_valid, error = NumberGenerator.validate_format("RF-{YEAR}")
        assert not is_valid
        assert "{NUMBER}" in error

    def test_unknown_token(self):
        is_valid, error = NumberGenerator.validate_format("RF-{WEEK}-{NUMBER}")
        assert not is_valid
        assert "{WEEK}" in error

    def test_unbalanced_braces(self):
        assert NumberGenerator.validate_format("RF-{NUMBER")[0] is False

    def test_empty(self):
        assert NumberGenerator.validate_format("")[0] is False


class TestDealNumberSetting:

    def test_default_template_is_accepted(self):
        assert Settings().deal_number_template == "RF-{YEAR}-{NUMBER:05}"

    def test_template_without_number_is_rejected(self):
        with pytest.raises(ValidationError, match="NUMBER"):
            Settings(deal_number_template="RF-{YEAR}")

    def test_unknown_token_is_rejected(self):
        with pytest.raises(ValidationError):
            Settings(deal_number_template="RF-{WEEK}-{NUMBER}")
