"""
Utility functions for common patterns across the backup extraction system.
"""

import re
from datetime import datetime, timezone
from typing import Any, List, Optional


# Placeholder text the exporting app writes for absent optional attributes
NULL_TEXT = "null"

NAME_SUFFIXES = (
    "Jr", "Sr", "II", "III", "IV", "MD", "M.D", "PhD", "Ph.D", "DDS", "DMD",
    "DVM", "Esq", "CPA", "RN",
)


class StringUtils:
    """Utility methods for string validation and processing."""

    # Cached regex patterns for performance
    _regex_cache = {
        'numbers_only': re.compile(r'[^0-9]'),
        'phone_formatting': re.compile(r'[\s().\-/]'),
        'letters': re.compile(r'[A-Za-z]'),
        'whitespace': re.compile(r'\s+'),
        'suffix_comma': re.compile(
            r'\s*,\s*(?=(?:' + '|'.join(re.escape(s) for s in NAME_SUFFIXES) + r')\.?\s*(?:,|$))',
            re.IGNORECASE
        ),
    }

    # Control characters that would tear a tab-delimited row
    _cell_escapes = (
        ('\t', '<TAB>'),
        ('\r', '<CR>'),
        ('\n', '<LF>'),
    )

    @staticmethod
    def safe_string_check(value: Any) -> bool:
        """
        Standardized string validation.

        Args:
            value: Value to check

        Returns:
            True if value is a non-empty string after stripping whitespace
        """
        return value is not None and str(value).strip() != ''

    @staticmethod
    def is_null_text(value: Any) -> bool:
        """Return True for None, empty strings and the literal ``null`` placeholder."""
        if value is None:
            return True
        text = str(value).strip()
        return text == '' or text.lower() == NULL_TEXT

    @staticmethod
    def none_if_null(value: Any) -> Optional[str]:
        """
        Map empty and ``null`` placeholder text to None.

        Args:
            value: Raw attribute text

        Returns:
            The original value, or None when it carries no data
        """
        if StringUtils.is_null_text(value):
            return None
        return value

    @staticmethod
    def extract_numbers_only(value: Any) -> str:
        """
        Extract only numeric characters from value.

        Args:
            value: Input value

        Returns:
            String containing only numeric characters
        """
        if value is None:
            return ''
        return StringUtils._regex_cache['numbers_only'].sub('', str(value))

    @staticmethod
    def has_letters(value: Any) -> bool:
        """Return True when the value contains any ASCII letter."""
        if value is None:
            return False
        return StringUtils._regex_cache['letters'].search(str(value)) is not None

    @staticmethod
    def format_phone_number(value: Any) -> str:
        """
        Strip display formatting from a raw phone number.

        Spaces, parentheses, dots, dashes and slashes are removed; a leading
        ``+`` is kept. Alphanumeric sender ids (short-code senders such as
        ``AMAZON``) are returned trimmed but otherwise untouched.

        Examples:
            '+1 (612) 555-0001' -> '+16125550001'
            '612.555.0001' -> '6125550001'

        Args:
            value: Raw phone number text

        Returns:
            Cleaned phone number, or '' for empty input
        """
        if StringUtils.is_null_text(value):
            return ''
        text = str(value).strip()
        if StringUtils.has_letters(text):
            return text
        return StringUtils._regex_cache['phone_formatting'].sub('', text)

    @staticmethod
    def escape_cell(value: Any) -> str:
        """
        Render a value for a tab-delimited cell.

        Tabs, carriage returns and line feeds are replaced with ``<TAB>``,
        ``<CR>`` and ``<LF>`` so every record stays on one row.

        Args:
            value: Value to render; None renders as ''

        Returns:
            Cell text safe for a TSV row
        """
        if value is None:
            return ''
        text = str(value)
        for raw, escaped in StringUtils._cell_escapes:
            text = text.replace(raw, escaped)
        return text

    @staticmethod
    def remove_commas_before_suffixes(value: Any) -> str:
        """
        Drop the comma between a name and a generational or professional suffix.

        Display names such as ``John Smith, Jr.`` would otherwise be split into
        two names when a comma-joined contact list is split.

        Examples:
            'John Smith, Jr.' -> 'John Smith Jr.'
            'Ann Lee, MD, Bob Ray' -> 'Ann Lee MD, Bob Ray'

        Args:
            value: Display name or comma-joined list of display names

        Returns:
            Text with suffix commas replaced by a single space
        """
        if value is None:
            return ''
        return StringUtils._regex_cache['suffix_comma'].sub(' ', str(value))

    @staticmethod
    def split_joined(value: Any, delimiter: str) -> List[str]:
        """Split delimiter-joined text and trim each entry; empty input yields []."""
        if StringUtils.is_null_text(value):
            return []
        return [item.strip() for item in str(value).split(delimiter)]

    @staticmethod
    def normalize_whitespace(value: Any) -> str:
        """
        Normalize whitespace in string values.

        Args:
            value: Input value

        Returns:
            String with normalized whitespace
        """
        if value is None:
            return ''
        return StringUtils._regex_cache['whitespace'].sub(' ', str(value).strip())


class ValidationUtils:
    """Utility methods for validation patterns."""

    TRUE_FLAGS = frozenset(('1', 'true'))
    FALSE_FLAGS = frozenset(('0', 'false', '', NULL_TEXT))

    @staticmethod
    def safe_int_conversion(value: Any, default: Optional[int] = None) -> Optional[int]:
        """
        Safely convert value to integer.

        Args:
            value: Value to convert
            default: Default value if conversion fails

        Returns:
            Integer value or default
        """
        if value is None:
            return default

        try:
            if isinstance(value, (int, float)):
                return int(value)
            return int(str(value).strip())
        except (ValueError, TypeError):
            return default

    @staticmethod
    def parse_flag(value: Any) -> Optional[bool]:
        """
        Parse a bool-like attribute.

        Args:
            value: Raw attribute text

        Returns:
            True or False for recognized spellings, None when unrecognized
        """
        text = '' if value is None else str(value).strip().lower()
        if text in ValidationUtils.TRUE_FLAGS:
            return True
        if text in ValidationUtils.FALSE_FLAGS:
            return False
        return None


class DateUtils:
    """Rendering helpers for epoch-millisecond timestamps."""

    DISPLAY_FORMAT = '%Y-%m-%d %H:%M:%S'

    @staticmethod
    def format_epoch_millis(value: int) -> str:
        """
        Render an epoch-millisecond timestamp as UTC text.

        Args:
            value: Milliseconds since the epoch; 0 is the absent-value sentinel

        Returns:
            'YYYY-MM-DD HH:MM:SS', or '' for the sentinel and out-of-range values
        """
        if not value:
            return ''
        try:
            moment = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return ''
        return moment.strftime(DateUtils.DISPLAY_FORMAT)
