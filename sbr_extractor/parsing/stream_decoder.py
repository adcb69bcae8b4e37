"""
Streaming decoder for SMS Backup & Restore XML documents.

This module turns a backup byte stream into an ordered sequence of typed
records without holding the document in memory. It feeds the stream to an
lxml pull parser in fixed-size chunks, maps each complete child element of
the root to its record, hands the record on, and then discards the element
and its already-processed siblings.

Two document shapes are supported:
- ``<smses count backup_set backup_date>`` holding ``<sms>`` and ``<mms>`` children
- ``<calls count backup_set backup_date>`` holding ``<call>`` children

Modes:
- push: a handler is registered per record kind and called for each record in
  document order; memory use is bounded by one in-flight element
- aggregate: ``collect_messages`` / ``collect_calls`` register a RecordCollector
  as the handler and return every record in memory

Error handling:
- no root element, the wrong root element, or an unreadable stream raise StructuralError
- malformed XML after the root has started raises ParseError with the element
  being decoded and the (line, column) position reported by libxml2
- root children with unknown names, or with no registered handler, are skipped

A skipped child is not mapped to a record, but lxml still builds its element
tree while parsing it; the element is released at its end event like any
other, so memory stays bounded by one in-flight element.
"""

import logging
import zipfile
import zlib
from contextlib import closing
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from lxml import etree

from ..exceptions import StructuralError, ParseError, DecoderConfigurationError
from ..mapping.record_mapper import RecordMapper
from ..models import BackupInfo, BackupKind, RecordKind, SMS, MMS, Call
from ..validation.diagnostics import DiagnosticLog
from .entity_repair import EntityRepairStream

RecordHandler = Callable[[Any], None]

DEFAULT_CHUNK_SIZE = 1024 * 1024


class BackupDecoder:
    """
    Base streaming decoder; subclasses declare the root tag and child kinds.

    Usage:
        decoder = MessageDecoder(stream, on_sms=write_sms, on_mms=write_mms)
        info = decoder.open()      # root attributes, before any record
        counts = decoder.decode()  # dispatch every record, in document order

    The decoder owns the stream it is given and closes it when decoding ends,
    whether decoding succeeded or failed.
    """

    BACKUP_KIND: BackupKind = None
    ROOT_TAG: str = None
    CHILD_TAGS: Dict[str, RecordKind] = {}

    def __init__(self, stream, handlers: Dict[RecordKind, Optional[RecordHandler]],
                 diagnostics: Optional[DiagnosticLog] = None,
                 source_file: Optional[str] = None,
                 repair_entities: bool = True,
                 chunk_size: int = DEFAULT_CHUNK_SIZE):
        """
        Initialize the decoder.

        Args:
            stream: Readable binary stream holding one backup document
            handlers: Handler per record kind; None means that kind is skipped
            diagnostics: Optional collector for field fallback diagnostics
            source_file: Identity of the backup file, used in errors and diagnostics
            repair_entities: Whether to repair XML-illegal character references
            chunk_size: Bytes fed to the parser per read

        Raises:
            DecoderConfigurationError: If no handler is registered for any kind
                                       this document shape can produce, or a
                                       handler is registered for a foreign kind
        """
        self.logger = logging.getLogger(__name__)

        expected_kinds = set(self.CHILD_TAGS.values())
        foreign = [kind.value for kind in handlers if kind not in expected_kinds]
        if foreign:
            raise DecoderConfigurationError(
                f"{type(self).__name__} cannot produce record kinds: {', '.join(foreign)}",
                source_file=source_file
            )
        self._handlers = {kind: handler for kind, handler in handlers.items() if handler is not None}
        if not self._handlers:
            expected = ', '.join(sorted(kind.value for kind in expected_kinds))
            raise DecoderConfigurationError(
                f"{type(self).__name__} needs a handler for at least one of: {expected}",
                source_file=source_file
            )

        self._stream = stream
        self._source = EntityRepairStream(stream, chunk_size) if repair_entities else stream
        self.chunk_size = chunk_size
        self.source_file = source_file
        self.mapper = RecordMapper(diagnostics=diagnostics, source_file=source_file)
        self._mappers = {
            RecordKind.SMS: self.mapper.map_sms,
            RecordKind.MMS: self.mapper.map_mms,
            RecordKind.CALL: self.mapper.map_call,
        }

        self._events: Optional[Iterator[Tuple[str, Any]]] = None
        self._root = None
        self._current_tag: Optional[str] = None
        self._closed = False
        self.backup_info: Optional[BackupInfo] = None

        # Statistics
        self.records_emitted: Dict[RecordKind, int] = {kind: 0 for kind in expected_kinds}
        self.elements_skipped = 0

    def open(self) -> BackupInfo:
        """
        Scan to the root element and read its attributes.

        Returns:
            BackupInfo from the root element (absent attributes keep defaults)

        Raises:
            StructuralError: If the stream is empty, unreadable, not XML, or its
                             root element is not this decoder's root
        """
        if self.backup_info is not None:
            return self.backup_info

        self._events = self._read_events()
        try:
            event, element = next(self._events)
        except StopIteration:
            self.close()
            raise StructuralError(
                f"No <{self.ROOT_TAG}> root element before end of stream",
                source_file=self.source_file
            )
        except Exception:
            self.close()
            raise

        if element.tag != self.ROOT_TAG:
            self.close()
            raise StructuralError(
                f"Expected <{self.ROOT_TAG}> root element, found <{element.tag}>",
                source_file=self.source_file
            )

        self._root = element
        self.backup_info = self.mapper.map_backup_info(element.attrib)
        self.logger.debug(
            f"Opened <{self.ROOT_TAG}> backup: count={self.backup_info.count!r}, "
            f"backup_set={self.backup_info.backup_set!r}"
        )
        return self.backup_info

    def iter_records(self) -> Iterator[Any]:
        """
        Yield records of every handled kind, lazily and in document order.

        The scanner does not resume until the consumer asks for the next record.

        Raises:
            StructuralError: See ``open``
            ParseError: If the document is malformed after the root element
        """
        self.open()
        depth = 1
        index = -1
        try:
            for event, element in self._events:
                if event == 'start':
                    depth += 1
                    if depth == 2:
                        index += 1
                        self._current_tag = element.tag
                    continue

                depth -= 1
                if depth != 1:
                    continue

                kind = self.CHILD_TAGS.get(element.tag)
                if kind is not None and kind in self._handlers:
                    record = self._mappers[kind](element, index)
                    self.records_emitted[kind] += 1
                    yield record
                else:
                    self.elements_skipped += 1
                    if kind is None:
                        self.logger.debug(f"Skipping unrecognized element <{element.tag}> at position {index}")

                self._release(element)
                self._current_tag = None
        finally:
            self.close()

    def decode(self) -> Dict[RecordKind, int]:
        """
        Dispatch every record to its handler.

        Handler exceptions propagate unchanged and stop decoding.

        Returns:
            Number of records dispatched per record kind
        """
        with closing(self.iter_records()) as records:
            for record in records:
                self._handlers[record.kind](record)
        return dict(self.records_emitted)

    def close(self) -> None:
        """Release the input stream. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        close = getattr(self._stream, 'close', None)
        if close is not None:
            close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _read_events(self) -> Iterator[Tuple[str, Any]]:
        parser = etree.XMLPullParser(
            events=('start', 'end'),
            huge_tree=True,
            resolve_entities=False,
            no_network=True,
            remove_comments=True,
            remove_pis=True,
        )
        while True:
            try:
                data = self._source.read(self.chunk_size)
            except (OSError, EOFError, zipfile.BadZipFile, zlib.error) as e:
                raise StructuralError(f"Unable to read backup stream: {e}", source_file=self.source_file)

            failure = None
            try:
                if data:
                    parser.feed(data)
                else:
                    parser.close()
            except etree.XMLSyntaxError as e:
                failure = e

            # Events produced before a syntax error are still delivered in order
            for event, element in parser.read_events():
                yield event, element

            if failure is not None:
                raise self._syntax_error(failure)
            if not data:
                return

    def _syntax_error(self, error: etree.XMLSyntaxError) -> Exception:
        position = getattr(error, 'position', None)
        if self._root is None:
            return StructuralError(
                f"No <{self.ROOT_TAG}> root element could be read: {error}",
                source_file=self.source_file
            )
        element = self._current_tag or self.ROOT_TAG
        return ParseError(
            f"Malformed XML in <{element}> at line {position[0] if position else '?'}: {error}",
            element=element,
            position=position,
            source_file=self.source_file
        )

    def _release(self, element) -> None:
        element.clear()
        while element.getprevious() is not None:
            del element.getparent()[0]


class MessageDecoder(BackupDecoder):
    """Decoder for ``<smses>`` documents holding ``<sms>`` and ``<mms>`` records."""

    BACKUP_KIND = BackupKind.MESSAGES
    ROOT_TAG = 'smses'
    CHILD_TAGS = {'sms': RecordKind.SMS, 'mms': RecordKind.MMS}

    def __init__(self, stream, on_sms: Optional[RecordHandler] = None,
                 on_mms: Optional[RecordHandler] = None, **kwargs):
        super().__init__(stream, {RecordKind.SMS: on_sms, RecordKind.MMS: on_mms}, **kwargs)


class CallDecoder(BackupDecoder):
    """Decoder for ``<calls>`` documents holding ``<call>`` records."""

    BACKUP_KIND = BackupKind.CALLS
    ROOT_TAG = 'calls'
    CHILD_TAGS = {'call': RecordKind.CALL}

    def __init__(self, stream, on_call: Optional[RecordHandler] = None, **kwargs):
        super().__init__(stream, {RecordKind.CALL: on_call}, **kwargs)


def create_decoder(backup_kind: BackupKind, stream, handler: RecordHandler, **kwargs) -> BackupDecoder:
    """
    Build the decoder for a backup kind with one handler for every record kind.

    Args:
        backup_kind: Messages or calls
        stream: Readable binary stream
        handler: Callable receiving every record
        **kwargs: Passed to the decoder (diagnostics, source_file, ...)

    Returns:
        MessageDecoder or CallDecoder
    """
    if backup_kind is BackupKind.MESSAGES:
        return MessageDecoder(stream, on_sms=handler, on_mms=handler, **kwargs)
    return CallDecoder(stream, on_call=handler, **kwargs)


@dataclass
class RecordCollection:
    """All records of one backup document, held in memory."""
    backup_info: BackupInfo
    sms: List[SMS] = field(default_factory=list)
    mms: List[MMS] = field(default_factory=list)
    calls: List[Call] = field(default_factory=list)
    records: List[Any] = field(default_factory=list)


class RecordCollector:
    """Default handler for aggregate mode; appends each record in arrival order."""

    def __init__(self):
        self.sms: List[SMS] = []
        self.mms: List[MMS] = []
        self.calls: List[Call] = []
        self.records: List[Any] = []
        self._lists = {
            RecordKind.SMS: self.sms,
            RecordKind.MMS: self.mms,
            RecordKind.CALL: self.calls,
        }

    def __call__(self, record) -> None:
        self._lists[record.kind].append(record)
        self.records.append(record)

    def to_collection(self, backup_info: BackupInfo) -> RecordCollection:
        return RecordCollection(
            backup_info=backup_info,
            sms=self.sms,
            mms=self.mms,
            calls=self.calls,
            records=self.records,
        )


def collect_messages(stream, **kwargs) -> RecordCollection:
    """
    Decode a message backup into memory.

    Args:
        stream: Readable binary stream holding an ``<smses>`` document
        **kwargs: Passed to MessageDecoder

    Returns:
        RecordCollection with ``sms``, ``mms`` and the interleaved ``records``
    """
    collector = RecordCollector()
    decoder = MessageDecoder(stream, on_sms=collector, on_mms=collector, **kwargs)
    backup_info = decoder.open()
    decoder.decode()
    return collector.to_collection(backup_info)


def collect_calls(stream, **kwargs) -> RecordCollection:
    """
    Decode a call backup into memory.

    Args:
        stream: Readable binary stream holding a ``<calls>`` document
        **kwargs: Passed to CallDecoder

    Returns:
        RecordCollection with ``calls``
    """
    collector = RecordCollector()
    decoder = CallDecoder(stream, on_call=collector, **kwargs)
    backup_info = decoder.open()
    decoder.decode()
    return collector.to_collection(backup_info)
