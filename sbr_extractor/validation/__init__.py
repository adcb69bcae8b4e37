"""
Diagnostics for the backup extraction system.

Non-fatal findings (field fallbacks, contact ambiguity, attachment failures,
count discrepancies) are collected here instead of being raised.
"""

from .diagnostics import (
    Diagnostic, DiagnosticLog, DiagnosticCategory, DiagnosticSeverity
)

__all__ = [
    'Diagnostic',
    'DiagnosticLog',
    'DiagnosticCategory',
    'DiagnosticSeverity',
]
