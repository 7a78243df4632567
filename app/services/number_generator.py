"""
Reference Number Generation

Builds the human-readable identifiers shown to admins and partners:
deal numbers (RF-2026-00042) and payment references (PAY-20261017-483920).
Templates use tokens like {YEAR}, {MONTH}, {DAY} and {NUMBER:05}.
"""

import re
import secrets
from datetime import datetime, timezone
from typing import Optional

VALID_TOKENS = [
    r'\{YEAR(?::\d+)?\}',
    r'\{MONTH\}',
    r'\{DAY\}',
    r'\{NUMBER(?::\d+)?\}',
]

TOKEN_PATTERN = re.compile(r"\{(YEAR|MONTH|DAY|NUMBER)(?::(\d+))?\}")


class NumberGenerator:
    """Formats sequence numbers and references from templates."""

    @staticmethod
    def generate(
        format_template: str,
        sequence_number: int,
        date: Optional[datetime] = None,
    ) -> str:
        """
        Generate a formatted number based on template and sequence.

        Args:
            format_template: Template string with tokens (e.g., "RF-{YEAR}-{NUMBER:05}")
            sequence_number: The sequential number to use
            date: Optional date to use (defaults to current UTC date)

        Returns:
            Formatted number string (e.g., "RF-2026-00001")

        Supported tokens:
            {YEAR}       - Current year (e.g., 2026)
            {YEAR:2}     - Last 2 digits of year (e.g., 26)
            {MONTH}      - Current month zero-padded (01-12)
            {DAY}        - Current day zero-padded (01-31)
            {NUMBER}     - Sequential number
            {NUMBER:05}  - Sequential number zero-padded to 5 digits
        """
        date = date or datetime.now(timezone.utc)
        year = str(date.year)

        def expand(match: re.Match) -> str:
            token, width = match.group(1), match.group(2)
            if token == "YEAR":
                return year[-int(width):] if width else year
            if token == "MONTH":
                return f"{date.month:02d}"
            if token == "DAY":
                return f"{date.day:02d}"
            return f"{sequence_number:0{int(width)}d}" if width else str(sequence_number)

        return TOKEN_PATTERN.sub(expand, format_template)

    @staticmethod
    def payment_reference(prefix: str = "PAY", date: Optional[datetime] = None) -> str:
        """
        Generate a display reference for a commission payment.

        The suffix is date plus six random digits. Uniqueness is likely but not
        guaranteed; the reference is for people reading statements, not a token.
        """
        return NumberGenerator.generate(
            f"{prefix}-{{YEAR}}{{MONTH}}{{DAY}}-{{NUMBER:06}}",
            secrets.randbelow(1_000_000),
            date=date,
        )

    @staticmethod
    def validate_format(format_template: str) -> tuple[bool, Optional[str]]:
        """
        Validate a format template.

        Returns:
            Tuple of (is_valid, error_message)
        """
        if not format_template or not isinstance(format_template, str):
            return False, "Format template cannot be empty"

        if len(format_template) > 100:
            return False, "Format template is too long (max 100 characters)"

        if "{NUMBER" not in format_template:
            return False, "Format must contain {NUMBER} token"

        if format_template.count("{") != format_template.count("}"):
            return False, "Unbalanced braces in format template"

        for token in re.findall(r'\{[^}]+\}', format_template):
            if not any(re.match(pattern, token) for pattern in VALID_TOKENS):
                return False, f"Invalid token: {token}"

        return True, None
