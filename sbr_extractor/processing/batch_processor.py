"""
Batch Processor - sequential per-file driver for backup extraction.

Processes backup files one after another in the main thread. For each file:

1. detect the backup kind from the file name
2. open the (possibly zipped) stream and read the root attributes
3. stream every record through the sink chain for that kind
4. commit every sink, or roll every sink back on the first fatal error

Per-file fatal errors are recorded in the file's FileResult and the batch
moves on. A cancellation from the progress callback rolls the current file
back and stops the batch. After the last file the resolved contact
directory is written and every sink is closed.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from ..config.config_manager import ConfigManager, get_config_manager
from ..contacts.contact_resolver import ContactResolver, ContactCollectorSink
from ..database.relational_sink import RelationalSink
from ..exceptions import (
    BackupExtractionError, ConfigurationError, ParseError, ProcessingCancelled, SinkError, StructuralError
)
from ..interfaces import BatchProcessorInterface, RecordSinkInterface
from ..models import BackupKind, FileResult, ProcessingResult, RecordKind
from ..monitoring.performance_monitor import PerformanceMonitor
from ..parsing.backup_source import detect_backup_kind, open_backup
from ..parsing.stream_decoder import create_decoder
from ..sinks.attachment_sink import AttachmentSink
from ..sinks.flat_file_sink import FlatFileSink
from ..sinks.sink_chain import SinkChain
from ..validation.diagnostics import DiagnosticLog, DiagnosticCategory

ProgressCallback = Callable[[RecordKind, int], Optional[bool]]

COUNT_OK = "OK"
COUNT_DISCREPANCY = "DISCREPANCY DETECTED"
COUNT_UNAVAILABLE = "UNAVAILABLE"


@dataclass
class BatchContext:
    """
    State shared by every file of one run.

    Attributes:
        resolver: Canonical contact map accumulated across files
        diagnostics: Non-fatal findings of the whole run
        record_totals: Records of committed files per record kind value
        file_results: Outcome of each file, in processing order
        errors: One message per failed file
        cancelled: Set when the progress callback stopped the run
    """
    resolver: ContactResolver
    diagnostics: DiagnosticLog
    record_totals: Dict[str, int] = field(default_factory=lambda: {kind.value: 0 for kind in RecordKind})
    file_results: List[FileResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    cancelled: bool = False

    def record_file(self, result: FileResult) -> None:
        self.file_results.append(result)
        if result.success:
            for kind, count in result.record_counts.items():
                self.record_totals[kind] = self.record_totals.get(kind, 0) + count
        elif result.error:
            self.errors.append(f"{Path(result.source_file).name}: {result.error}")

    @property
    def files_failed(self) -> int:
        return sum(1 for result in self.file_results if not result.success)

    @property
    def records_processed(self) -> int:
        return sum(self.record_totals.values())


class BatchProcessor(BatchProcessorInterface):
    """
    Single-threaded driver running backup files through the configured sinks.

    One sink chain is built per backup kind on first use and reused for later
    files of that kind, so flat-file indices continue across files:
    - messages: flat file, relational, attachments, contact collector
    - calls: flat file, relational

    A processor handles one run; ``process_files`` closes every sink when done.
    """

    def __init__(self, config_manager: Optional[ConfigManager] = None,
                 progress: Optional[ProgressCallback] = None):
        """
        Initialize the batch processor.

        Args:
            config_manager: Configuration; the global manager when None
            progress: Optional ``progress(kind, processed_count)`` called after
                      every record; returning False cancels the run
        """
        self.logger = logging.getLogger(__name__)
        self.config = config_manager or get_config_manager()
        self.progress = progress

        params = self.config.processing_params
        diagnostics = DiagnosticLog(max_entries_per_category=params.max_diagnostics_per_category)
        self.context = BatchContext(
            resolver=ContactResolver(default_region=params.default_region, diagnostics=diagnostics),
            diagnostics=diagnostics,
        )
        self.monitor = PerformanceMonitor()
        self._chains: Dict[BackupKind, SinkChain] = {}
        self.attachment_sink: Optional[AttachmentSink] = None

        self.logger.info(f"BatchProcessor initialized (output: {self.config.output_dir})")

    def process_files(self, paths: List[Union[str, Path]]) -> ProcessingResult:
        """
        Process backup files in order.

        Args:
            paths: Backup files (``.xml`` or single-file ``.zip``)

        Returns:
            ProcessingResult with per-file outcomes and run totals

        Raises:
            ConfigurationError: If the output directory cannot be created
        """
        self._prepare_output_dir()
        self.monitor.start_monitoring()
        try:
            for path in paths:
                self.process_file(path)
                if self.context.cancelled:
                    self.logger.warning("Run cancelled; remaining files were not processed")
                    break
            self._write_contacts()
        finally:
            self.close()

        self.monitor.stop_monitoring()
        return self._build_result()

    def process_file(self, path: Union[str, Path]) -> FileResult:
        """
        Process one backup file through its sink chain.

        Fatal errors are captured in the returned FileResult, never raised.

        Args:
            path: Backup file

        Returns:
            FileResult for the file
        """
        source_file = str(path)
        result = FileResult(source_file=source_file)
        self.monitor.start_file(source_file)
        self.logger.info(f"Processing {source_file}")

        chain: Optional[SinkChain] = None
        in_file = False
        counts: Dict[str, int] = {}
        try:
            result.backup_kind = detect_backup_kind(path)
            counts.update({kind.value: 0 for kind in self._record_kinds(result.backup_kind)})
            chain = self._get_chain(result.backup_kind)

            with open_backup(path) as stream:
                params = self.config.processing_params
                decoder = create_decoder(
                    result.backup_kind,
                    stream,
                    self._dispatcher(chain, counts, source_file),
                    diagnostics=self.context.diagnostics,
                    source_file=source_file,
                    repair_entities=params.repair_entities,
                    chunk_size=params.read_chunk_size,
                )
                result.backup_info = decoder.open()
                in_file = True
                chain.begin(source_file, result.backup_info)
                decoder.decode()

            chain.commit()
            in_file = False
            result.success = True
            result.count_check = self._check_count(result, counts)

        except ProcessingCancelled as e:
            self.context.cancelled = True
            self._fail(result, 'cancelled', e)
        except StructuralError as e:
            self._fail(result, 'structure' if result.backup_kind else 'detection', e)
        except ParseError as e:
            self._fail(result, 'parsing', e)
        except SinkError as e:
            self._fail(result, 'sink', e)
        except BackupExtractionError as e:
            self._fail(result, 'processing', e)
        except Exception as e:
            self.logger.exception(f"Unexpected failure processing {source_file}")
            self._fail(result, 'processing', e)
        finally:
            if in_file and chain is not None:
                chain.rollback()

        result.record_counts = counts
        result.processing_time_seconds = self.monitor.end_file(source_file, result.total_records)
        self.context.record_file(result)

        if result.success:
            self.logger.info(
                f"Finished {source_file}: {result.total_records} records "
                f"in {result.processing_time_seconds:.2f}s (count check: {result.count_check})"
            )
        return result

    def close(self) -> None:
        """Close every sink chain opened during the run."""
        for kind, chain in self._chains.items():
            self.logger.debug(f"Closing {kind.value} sinks: {', '.join(chain.names)}")
            chain.close()
        self._chains = {}

    def _dispatcher(self, chain: SinkChain, counts: Dict[str, int], source_file: str):
        interval = self.config.processing_params.progress_reporting_interval
        processed = 0

        def dispatch(record) -> None:
            nonlocal processed
            chain.accept(record)
            counts[record.kind.value] += 1
            processed += 1

            if interval and processed % interval == 0:
                memory_mb = self.monitor.sample_memory()
                self.logger.info(f"{source_file}: {processed} records processed ({memory_mb:.0f} MB)")

            if self.progress is not None and self.progress(record.kind, processed) is False:
                raise ProcessingCancelled(
                    f"Cancelled by progress callback after {processed} records",
                    source_file=source_file
                )

        return dispatch

    def _get_chain(self, backup_kind: BackupKind) -> SinkChain:
        chain = self._chains.get(backup_kind)
        if chain is None:
            chain = SinkChain(self._build_sinks(backup_kind))
            self._chains[backup_kind] = chain
            self.logger.info(f"{backup_kind.value} sinks: {', '.join(chain.names) or 'none'}")
        return chain

    def _build_sinks(self, backup_kind: BackupKind) -> List[RecordSinkInterface]:
        output = self.config.output_config
        database = self.config.database_config
        params = self.config.processing_params
        sinks: List[RecordSinkInterface] = []
        try:
            if output.enable_flat_file:
                sinks.append(FlatFileSink(self.config.output_dir, backup_kind, params.flat_file_buffer_size))
            if output.enable_relational:
                sinks.append(RelationalSink.open(
                    database_path=self.config.database_path,
                    connection_string=database.connection_string,
                    backup_kind=backup_kind,
                    timeout=database.connection_timeout,
                    schema=database.schema,
                ))
            if backup_kind is BackupKind.MESSAGES:
                if output.enable_attachments:
                    self.attachment_sink = AttachmentSink(self.config.attachment_dir, self.context.diagnostics)
                    sinks.append(self.attachment_sink)
                if output.enable_contacts:
                    sinks.append(ContactCollectorSink(self.context.resolver))
        except SinkError:
            SinkChain(sinks).close()
            raise
        return sinks

    @staticmethod
    def _record_kinds(backup_kind: BackupKind) -> List[RecordKind]:
        if backup_kind is BackupKind.MESSAGES:
            return [RecordKind.SMS, RecordKind.MMS]
        return [RecordKind.CALL]

    def _check_count(self, result: FileResult, counts: Dict[str, int]) -> str:
        expected = result.backup_info.expected_count if result.backup_info else None
        if expected is None:
            return COUNT_UNAVAILABLE

        actual = sum(counts.values())
        if expected == actual:
            self.logger.info(f"{result.source_file}: count QC {COUNT_OK} ({actual} records)")
            return COUNT_OK

        self.context.diagnostics.report(
            DiagnosticCategory.COUNT_MISMATCH,
            f"{COUNT_DISCREPANCY}: backup reports {expected} records, {actual} decoded",
            source_file=result.source_file,
            raw_value=result.backup_info.count,
            additional_context={'expected': expected, 'actual': actual, 'by_kind': dict(counts)},
        )
        return COUNT_DISCREPANCY

    def _fail(self, result: FileResult, stage: str, error: Exception) -> None:
        result.success = False
        result.error_stage = stage
        result.error = str(error)
        self.logger.error(f"{result.source_file}: {stage} failed: {error}")

    def _write_contacts(self) -> None:
        if not self.config.output_config.enable_contacts:
            return
        chain = self._chains.get(BackupKind.MESSAGES)
        if chain is None:
            self.logger.info("No message backups processed; contact directory not written")
            return
        contacts = self.context.resolver.sorted_contacts()
        try:
            chain.write_contacts(contacts)
        except SinkError as e:
            self.logger.error(f"Failed to write contact directory: {e}")
            self.context.errors.append(f"contacts: {e}")

    def _prepare_output_dir(self) -> None:
        try:
            self.config.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(f"Unable to create output directory {self.config.output_dir}: {e}")

    def _build_result(self) -> ProcessingResult:
        context = self.context
        performance_metrics = self.monitor.get_performance_summary()
        if self.attachment_sink is not None:
            performance_metrics['attachments'] = {
                'parts_identified': self.attachment_sink.parts_identified,
                'parts_written': self.attachment_sink.parts_written,
                'parts_failed': len(self.attachment_sink.errors),
            }

        result = ProcessingResult(
            records_processed=context.records_processed,
            files_processed=len(context.file_results),
            files_failed=context.files_failed,
            processing_time_seconds=self.monitor.total_processing_time,
            errors=list(context.errors),
            performance_metrics=performance_metrics,
            file_results=list(context.file_results),
            diagnostic_summary=context.diagnostics.summary(),
            contacts_resolved=len(context.resolver.contacts),
            cancelled=context.cancelled,
        )

        context.diagnostics.log_summary(self.logger)
        self.logger.info(
            f"Run complete - files: {result.files_successful}/{result.files_processed} succeeded, "
            f"records: {result.records_processed}, contacts: {result.contacts_resolved}, "
            f"time: {result.processing_time_seconds:.2f}s"
        )
        return result
