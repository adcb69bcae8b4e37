"""
Abstract interfaces and base classes for the backup extraction system.

This module defines the contracts that sinks and batch processors implement
so the processing pipeline can be composed from independent components.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List, Union

from .models import BackupInfo, Contact, ProcessingResult


class RecordSinkInterface(ABC):
    """
    Abstract interface for consumers of the decoded record stream.

    Lifecycle per backup file: ``begin`` once, ``accept`` per record in
    document order, then exactly one of ``commit`` (every record accepted) or
    ``rollback`` (any failure, in this sink or elsewhere in the chain).
    ``close`` releases the sink's output when the run is over.

    A sink never looks at another sink's state.
    """

    name: str = "sink"

    @abstractmethod
    def begin(self, source_file: str, backup_info: BackupInfo) -> None:
        """
        Start receiving the records of one backup file.

        Args:
            source_file: Identity of the backup file
            backup_info: Root attributes of the backup document

        Raises:
            SinkError: If the sink cannot prepare for the file
        """
        pass

    @abstractmethod
    def accept(self, record) -> None:
        """
        Consume one fully decoded record.

        Records of kinds the sink does not handle are ignored.

        Args:
            record: SMS, MMS or Call

        Raises:
            SinkError: If the record cannot be written
        """
        pass

    @abstractmethod
    def commit(self) -> None:
        """
        Make the current file's output durable.

        Raises:
            SinkError: If the output cannot be flushed or committed
        """
        pass

    @abstractmethod
    def rollback(self) -> None:
        """Abandon the current file; must not raise for cleanup failures."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release output handles and connections."""
        pass

    def write_contacts(self, contacts: Iterable[Contact]) -> None:
        """
        Persist the resolved contact directory at the end of a run.

        Sinks without a contact representation keep this default no-op.

        Args:
            contacts: Resolved contacts
        """
        pass


class BatchProcessorInterface(ABC):
    """Abstract interface for drivers that process a batch of backup files."""

    @abstractmethod
    def process_files(self, paths: List[Union[str, Path]]) -> ProcessingResult:
        """
        Process backup files one after another.

        Args:
            paths: Backup files (``.xml`` or single-file ``.zip``)

        Returns:
            ProcessingResult with per-file outcomes and run totals
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Close every sink opened during the run."""
        pass
