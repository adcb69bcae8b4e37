"""
Phone number normalization used as the contact merge key.

Rule: the canonical number is the national significant number as parsed by
``phonenumbers`` in the default region, so "+1 (555) 123-4567",
"15551234567" and "555-123-4567" all become "5551234567". Differing
country-code prefixes of the same subscriber number therefore merge.
Numbers that ``phonenumbers`` cannot parse fall back to their digits.
Alphanumeric sender ids (short-code services, carrier names) are kept as
lower-cased text.
"""

import logging

import phonenumbers

from ..utils import StringUtils

logger = logging.getLogger(__name__)


def normalize_phone_number(raw: str, default_region: str = "US") -> str:
    """
    Reduce a raw address to its canonical form.

    Args:
        raw: Address text as it appears in the backup
        default_region: ISO region used for numbers without a country code

    Returns:
        Canonical number, or '' when the address carries nothing usable
    """
    if not StringUtils.safe_string_check(raw):
        return ''
    text = str(raw).strip()

    if StringUtils.has_letters(text):
        return StringUtils.normalize_whitespace(text).lower()

    try:
        parsed = phonenumbers.parse(text, default_region)
    except phonenumbers.NumberParseException as e:
        logger.debug(f"phonenumbers could not parse '{text}', using digits only: {e}")
        return StringUtils.extract_numbers_only(text)

    return str(parsed.national_number)
