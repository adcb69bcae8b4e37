"""
Contact directory derivation from message records.
"""

from .phone_numbers import normalize_phone_number
from .contact_resolver import (
    ContactResolver, ContactCollectorSink, COMMA_IN_NAME_REASON, MISSING_NAME_REASON
)

__all__ = [
    'normalize_phone_number',
    'ContactResolver',
    'ContactCollectorSink',
    'COMMA_IN_NAME_REASON',
    'MISSING_NAME_REASON',
]
