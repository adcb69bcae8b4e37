"""
Sink Chain - fan-out of the record stream to independent sinks.

Every record goes to every sink in registration order. The first sink error
stops the file: the caller rolls the whole chain back, so a transactional
sink undoes its work and a flat file is cut back to its last complete row.
"""

import logging
from typing import Iterable, List

from ..exceptions import SinkError
from ..interfaces import RecordSinkInterface
from ..models import BackupInfo, Contact


class SinkChain:
    """
    Ordered collection of sinks behind a single accept/commit/rollback surface.

    Failures from a sink that are not already SinkError (an OSError from a
    disk, a driver error) are wrapped in SinkError naming the sink.
    """

    def __init__(self, sinks: Iterable[RecordSinkInterface]):
        self.logger = logging.getLogger(__name__)
        self.sinks: List[RecordSinkInterface] = list(sinks)
        self.source_file = None

    @property
    def names(self) -> List[str]:
        return [sink.name for sink in self.sinks]

    def begin(self, source_file: str, backup_info: BackupInfo) -> None:
        """Start a file on every sink."""
        self.source_file = source_file
        for sink in self.sinks:
            self._call(sink, 'begin', source_file, backup_info)

    def accept(self, record) -> None:
        """
        Hand one record to every sink, stopping at the first failure.

        Raises:
            SinkError: From the first sink that fails
        """
        for sink in self.sinks:
            self._call(sink, 'accept', record)

    def commit(self) -> None:
        """
        Commit the current file on every sink.

        Raises:
            SinkError: From the first sink whose commit fails
        """
        for sink in self.sinks:
            self._call(sink, 'commit')
        self.logger.debug(f"Committed {self.source_file} on sinks: {', '.join(self.names)}")

    def rollback(self) -> None:
        """Roll back the current file on every sink; failures are logged, not raised."""
        for sink in self.sinks:
            try:
                sink.rollback()
            except Exception as e:
                self.logger.error(f"Rollback failed on {sink.name} sink for {self.source_file}: {e}")
        self.logger.warning(f"Rolled back {self.source_file} on sinks: {', '.join(self.names)}")

    def write_contacts(self, contacts: List[Contact]) -> None:
        """Persist resolved contacts on every sink that stores them."""
        for sink in self.sinks:
            self._call(sink, 'write_contacts', contacts)

    def close(self) -> None:
        """Close every sink; failures are logged so the others still close."""
        for sink in self.sinks:
            try:
                sink.close()
            except Exception as e:
                self.logger.error(f"Failed to close {sink.name} sink: {e}")

    def _call(self, sink: RecordSinkInterface, method: str, *args) -> None:
        try:
            getattr(sink, method)(*args)
        except SinkError:
            raise
        except Exception as e:
            raise SinkError(
                f"{sink.name} sink failed during {method}: {e}",
                sink_name=sink.name,
                source_file=self.source_file
            ) from e
