"""
Unit tests for the streaming backup decoder.

This module tests:
- Document-order emission of interleaved sms/mms records (push mode)
- Aggregate mode (collect_messages / collect_calls)
- Skipping of unrecognized and unhandled elements
- StructuralError for missing or wrong roots, ParseError for mid-document damage
- Setup-time DecoderConfigurationError when no handler is registered
- Character reference repair and small read chunks
"""

import io
import zlib

import pytest
from unittest.mock import Mock

from sbr_extractor.exceptions import (
    ConfigurationError, DecoderConfigurationError, ParseError, StructuralError
)
from sbr_extractor.models import BackupKind, CallType, RecordKind
from sbr_extractor.parsing.stream_decoder import (
    BackupDecoder, CallDecoder, MessageDecoder, collect_calls, collect_messages, create_decoder
)
from sbr_extractor.validation.diagnostics import DiagnosticCategory, DiagnosticLog
from tests.helpers import (
    call_xml, calls_document, image_mms_xml, messages_document, mms_xml, part_xml, sms_xml
)


@pytest.fixture
def interleaved_document():
    """Messages in the order [sms, mms, sms]."""
    return messages_document(
        sms_xml(body="first"),
        image_mms_xml(),
        sms_xml(body="third", address="+15551230009"),
    )


class TestPushMode:
    """Records are handed to handlers in document order."""

    def test_interleaved_order_is_preserved(self, interleaved_document):
        received = []
        decoder = MessageDecoder(io.BytesIO(interleaved_document), on_sms=received.append, on_mms=received.append)
        counts = decoder.decode()

        assert [record.kind for record in received] == [RecordKind.SMS, RecordKind.MMS, RecordKind.SMS]
        assert received[0].body == "first"
        assert received[2].body == "third"
        assert counts == {RecordKind.SMS: 2, RecordKind.MMS: 1}

    def test_open_returns_root_attributes_before_records(self, interleaved_document):
        received = []
        decoder = MessageDecoder(io.BytesIO(interleaved_document), on_sms=received.append)
        info = decoder.open()

        assert info.count == "3"
        assert info.backup_set == "7f2c1a52-3d1e-4f1b-9a2e-0c5d8f6e1b4a"
        assert info.backup_date == 1700000300000
        assert received == []
        assert decoder.open() is info

    def test_unhandled_kind_is_skipped(self, interleaved_document):
        received = []
        decoder = MessageDecoder(io.BytesIO(interleaved_document), on_sms=received.append)
        counts = decoder.decode()

        assert [record.body for record in received] == ["first", "third"]
        assert counts[RecordKind.MMS] == 0
        assert decoder.elements_skipped == 1

    def test_unrecognized_elements_are_skipped(self):
        document = messages_document(
            sms_xml(body="a"),
            '<note text="not a message"><sms body="nested, ignored" /></note>',
            sms_xml(body="b"),
        )
        received = []
        decoder = MessageDecoder(io.BytesIO(document), on_sms=received.append)
        decoder.decode()

        assert [record.body for record in received] == ["a", "b"]
        assert decoder.elements_skipped == 1

    def test_empty_root_yields_no_records(self):
        received = []
        decoder = CallDecoder(io.BytesIO(calls_document()), on_call=received.append)
        assert decoder.decode() == {RecordKind.CALL: 0}
        assert received == []

    def test_handler_exception_stops_decoding_and_closes_stream(self, interleaved_document):
        stream = io.BytesIO(interleaved_document)

        def handler(record):
            raise RuntimeError("sink failed")

        decoder = MessageDecoder(stream, on_sms=handler, on_mms=handler)
        with pytest.raises(RuntimeError, match="sink failed"):
            decoder.decode()
        assert stream.closed

    def test_stream_closed_after_success(self, interleaved_document):
        stream = io.BytesIO(interleaved_document)
        MessageDecoder(stream, on_sms=lambda record: None).decode()
        assert stream.closed

    def test_iter_records_is_lazy(self, interleaved_document):
        decoder = MessageDecoder(io.BytesIO(interleaved_document), on_sms=lambda r: None, on_mms=lambda r: None)
        records = decoder.iter_records()
        first = next(records)
        assert first.body == "first"
        assert decoder.records_emitted[RecordKind.SMS] == 1
        assert decoder.records_emitted[RecordKind.MMS] == 0
        records.close()

    @pytest.mark.parametrize("chunk_size", [1, 16, 97])
    def test_small_read_chunks(self, interleaved_document, chunk_size):
        received = []
        decoder = MessageDecoder(io.BytesIO(interleaved_document), on_sms=received.append,
                                 on_mms=received.append, chunk_size=chunk_size)
        decoder.decode()
        assert [record.kind for record in received] == [RecordKind.SMS, RecordKind.MMS, RecordKind.SMS]
        assert len(received[1].parts) == 3

    def test_create_decoder_routes_every_kind_to_one_handler(self, interleaved_document):
        received = []
        decoder = create_decoder(BackupKind.MESSAGES, io.BytesIO(interleaved_document), received.append)
        assert isinstance(decoder, MessageDecoder)
        decoder.decode()
        assert len(received) == 3

        decoder = create_decoder(BackupKind.CALLS, io.BytesIO(calls_document(call_xml())), received.append)
        assert isinstance(decoder, CallDecoder)

    def test_field_fallbacks_reach_diagnostics(self):
        diagnostics = DiagnosticLog()
        document = calls_document(call_xml(type="7"), call_xml(duration="n/a"))
        decoder = CallDecoder(io.BytesIO(document), on_call=lambda r: None,
                              diagnostics=diagnostics, source_file="calls-1.xml")
        decoder.decode()

        fallbacks = diagnostics.by_category(DiagnosticCategory.FIELD_FALLBACK)
        assert [(d.field_name, d.record_index) for d in fallbacks] == [("type", 0), ("duration", 1)]
        assert all(d.source_file == "calls-1.xml" for d in fallbacks)


class TestAggregateMode:
    """collect_messages / collect_calls hold every record in memory."""

    def test_collect_messages(self, interleaved_document):
        collection = collect_messages(io.BytesIO(interleaved_document))

        assert collection.backup_info.count == "3"
        assert len(collection.sms) == 2
        assert len(collection.mms) == 1
        assert [record.kind for record in collection.records] == [RecordKind.SMS, RecordKind.MMS, RecordKind.SMS]
        assert collection.calls == []

    def test_collect_calls(self):
        document = calls_document(call_xml(type="3"), call_xml(type="7"))
        collection = collect_calls(io.BytesIO(document))

        assert [str(call.type) for call in collection.calls] == ["Missed", "Unknown(7)"]
        assert collection.calls[1].type.member is CallType.UNKNOWN


class TestDecoderConfiguration:
    """A decoder without handlers is a setup-time error."""

    def test_no_handlers(self):
        with pytest.raises(DecoderConfigurationError, match="needs a handler"):
            MessageDecoder(io.BytesIO(b""))

    def test_all_handlers_none(self):
        with pytest.raises(DecoderConfigurationError):
            CallDecoder(io.BytesIO(b""), on_call=None)

    def test_handler_for_kind_the_document_cannot_produce(self):
        decoder = CallDecoder.__new__(CallDecoder)
        with pytest.raises(DecoderConfigurationError, match="cannot produce"):
            BackupDecoder.__init__(decoder, io.BytesIO(b""), {RecordKind.SMS: lambda r: None})

    def test_is_a_configuration_error(self):
        assert issubclass(DecoderConfigurationError, ConfigurationError)


class TestStructuralErrors:
    """Unusable documents fail before any record is emitted."""

    def test_empty_stream(self):
        stream = io.BytesIO(b"")
        decoder = MessageDecoder(stream, on_sms=lambda r: None)
        with pytest.raises(StructuralError):
            decoder.open()
        assert stream.closed

    def test_not_xml(self):
        decoder = MessageDecoder(io.BytesIO(b"this is not xml at all"), on_sms=lambda r: None)
        with pytest.raises(StructuralError):
            decoder.decode()

    def test_wrong_root(self):
        stream = io.BytesIO(calls_document(call_xml()))
        decoder = MessageDecoder(stream, on_sms=lambda r: None, source_file="sms-1.xml")
        with pytest.raises(StructuralError, match="Expected <smses> root element, found <calls>") as exc_info:
            decoder.open()
        assert exc_info.value.source_file == "sms-1.xml"
        assert stream.closed

    def test_corrupt_compressed_stream(self):
        stream = Mock()
        stream.read.side_effect = zlib.error("invalid stored block lengths")
        decoder = MessageDecoder(stream, on_sms=lambda r: None, repair_entities=False)
        with pytest.raises(StructuralError, match="Unable to read backup stream"):
            decoder.open()
        stream.close.assert_called_once()


class TestParseErrors:
    """Damage after the root element is a ParseError."""

    def test_malformed_element_mid_document(self):
        document = (
            b'<smses count="3">'
            + sms_xml(body="one").encode()
            + sms_xml(body="two").encode()
            + b'<mms address="5551230001"><parts>' + part_xml(text="x").encode() + b'</mms>'
            + b'</smses>'
        )
        received = []
        decoder = MessageDecoder(io.BytesIO(document), on_sms=received.append, on_mms=received.append,
                                 source_file="sms-1.xml")
        with pytest.raises(ParseError) as exc_info:
            decoder.decode()

        assert [record.body for record in received] == ["one", "two"]
        assert exc_info.value.element == "mms"
        assert exc_info.value.source_file == "sms-1.xml"

    def test_truncated_document(self):
        document = messages_document(sms_xml(), mms_xml())[:-40]
        decoder = MessageDecoder(io.BytesIO(document), on_sms=lambda r: None, on_mms=lambda r: None)
        with pytest.raises(ParseError):
            decoder.decode()


class TestCharacterReferenceRepair:
    """Emoji written as surrogate references survive decoding."""

    DOCUMENT = (
        b'<smses count="1">'
        b'<sms address="5551230001" type="1" body="hi &#55357;&#56832;&#0;" />'
        b'</smses>'
    )

    def test_surrogate_pair_becomes_one_character(self):
        collection = collect_messages(io.BytesIO(self.DOCUMENT))
        assert collection.sms[0].body == "hi \U0001F600"

    def test_repair_across_tiny_chunks(self):
        collection = collect_messages(io.BytesIO(self.DOCUMENT), chunk_size=3)
        assert collection.sms[0].body == "hi \U0001F600"
