"""
Diagnostic Data Models

This module defines the structures used to report non-fatal findings during a
run: field values that fell back to a sentinel, contact naming conflicts,
contact lists that could not be paired, attachment parts that could not be
written, and reported record counts that do not match what was decoded.

None of these stop processing. They are collected in a DiagnosticLog, logged
as they happen, and summarized when the run ends.

Key Data Structures:
- Diagnostic: One finding with category, severity and location context
- DiagnosticLog: Run-wide collector with per-category counts and bounded storage
- Enums: DiagnosticCategory and DiagnosticSeverity for consistent categorization
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional


class DiagnosticSeverity(Enum):
    """Severity levels for diagnostics."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class DiagnosticCategory(Enum):
    """Kinds of non-fatal findings."""
    FIELD_FALLBACK = "field_fallback"
    CONTACT_CONFLICT = "contact_conflict"
    CONTACT_SPLIT_MISMATCH = "contact_split_mismatch"
    NORMALIZATION = "normalization"
    ATTACHMENT_ERROR = "attachment_error"
    COUNT_MISMATCH = "count_mismatch"


@dataclass
class Diagnostic:
    """
    A single non-fatal finding with location context.

    Location Context:
    - source_file: Backup file the finding came from
    - record_kind: 'sms', 'mms' or 'call'
    - record_index: Position of the element among the root's children
    - field_name: Source attribute involved, when there is one

    Value Context:
    - raw_value: The source text that triggered the finding
    - additional_context: Anything else worth keeping (e.g. both conflicting names)
    """
    category: DiagnosticCategory
    severity: DiagnosticSeverity
    message: str
    source_file: Optional[str] = None
    record_kind: Optional[str] = None
    record_index: Optional[int] = None
    field_name: Optional[str] = None
    raw_value: Optional[Any] = None
    additional_context: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """String representation of the diagnostic."""
        location = ""
        if self.source_file:
            location = f" in {self.source_file}"
        if self.record_kind:
            location += f" {self.record_kind}"
            if self.record_index is not None:
                location += f"[{self.record_index}]"
        if self.field_name:
            location += f".{self.field_name}"

        return f"[{self.severity.value.upper()}] {self.category.value}{location}: {self.message}"


class DiagnosticLog:
    """
    Collector for diagnostics across a whole run.

    Every report is counted and logged. Only the first ``max_entries_per_category``
    diagnostics of each category are retained, so a file with millions of
    fallback values cannot exhaust memory.
    """

    _LOG_LEVELS = {
        DiagnosticSeverity.ERROR: logging.ERROR,
        DiagnosticSeverity.WARNING: logging.WARNING,
        DiagnosticSeverity.INFO: logging.INFO,
    }

    def __init__(self, max_entries_per_category: int = 1000,
                 logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.max_entries_per_category = max_entries_per_category
        self._entries: List[Diagnostic] = []
        self._counts: Counter = Counter()

    def report(self, category: DiagnosticCategory, message: str,
               severity: DiagnosticSeverity = DiagnosticSeverity.WARNING,
               **context) -> Diagnostic:
        """
        Record a diagnostic.

        Args:
            category: Kind of finding
            message: Human-readable description
            severity: Severity level (WARNING by default)
            **context: Diagnostic location/value fields (source_file, record_kind,
                       record_index, field_name, raw_value, additional_context)

        Returns:
            The Diagnostic that was recorded
        """
        diagnostic = Diagnostic(category=category, severity=severity, message=message, **context)
        self._counts[category] += 1
        if self._counts[category] <= self.max_entries_per_category:
            self._entries.append(diagnostic)

        # Field fallbacks are routine in real exports; keep them out of WARNING output
        level = logging.DEBUG if category is DiagnosticCategory.FIELD_FALLBACK else self._LOG_LEVELS[severity]
        if self.logger.isEnabledFor(level):
            self.logger.log(level, str(diagnostic))
        return diagnostic

    def count(self, category: Optional[DiagnosticCategory] = None) -> int:
        """Number of diagnostics reported, overall or for one category."""
        if category is None:
            return sum(self._counts.values())
        return self._counts[category]

    def by_category(self, category: DiagnosticCategory) -> List[Diagnostic]:
        """Retained diagnostics of one category."""
        return [entry for entry in self._entries if entry.category is category]

    def summary(self) -> Dict[str, int]:
        """Per-category counts keyed by category value."""
        return {category.value: total for category, total in self._counts.items()}

    def log_summary(self, logger: Optional[logging.Logger] = None) -> None:
        """
        Log a summary of all diagnostics reported so far.

        Args:
            logger: Optional logger instance. If None, uses this log's logger.
        """
        logger = logger or self.logger
        if not self._counts:
            logger.info("Diagnostics: none")
            return
        lines = "\n".join(f"  {name}: {total}" for name, total in sorted(self.summary().items()))
        logger.info(f"Diagnostics summary:\n{lines}")

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self._entries)
