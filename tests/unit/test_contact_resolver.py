"""
Unit tests for phone normalization and the contact resolver.

Scenarios:
- Differently formatted spellings of one number merge on the canonical number
- "(Unknown)" never replaces a real name; a real name replaces "(Unknown)"
- Two different real names keep the first and report CONTACT_CONFLICT
- MMS address/name lists of unequal length are skipped with a diagnostic
- ContactCollectorSink only merges committed files
"""

import unittest

from sbr_extractor.contacts.contact_resolver import (
    COMMA_IN_NAME_REASON, MISSING_NAME_REASON, ContactCollectorSink, ContactResolver
)
from sbr_extractor.contacts.phone_numbers import normalize_phone_number
from sbr_extractor.models import BackupInfo, Call, MMS, SMS
from sbr_extractor.validation.diagnostics import DiagnosticCategory, DiagnosticLog


class TestNormalizePhoneNumber(unittest.TestCase):
    """Test canonical number rules."""

    def test_formatting_variants_share_a_canonical_number(self):
        for raw in ("+1 (555) 123-4567", "15551234567", "555-123-4567", "555.123.4567", "+15551234567"):
            with self.subTest(raw=raw):
                self.assertEqual(normalize_phone_number(raw), "5551234567")

    def test_default_region_applies_to_national_numbers(self):
        self.assertEqual(normalize_phone_number("07700 900123", "GB"), "7700900123")
        self.assertEqual(normalize_phone_number("+44 7700 900123"), "7700900123")

    def test_alphanumeric_senders_are_lowercased_text(self):
        self.assertEqual(normalize_phone_number("  AMAZON "), "amazon")
        self.assertEqual(normalize_phone_number("Verizon  Wireless"), "verizon wireless")

    def test_empty_and_unparseable(self):
        self.assertEqual(normalize_phone_number(""), "")
        self.assertEqual(normalize_phone_number(None), "")
        self.assertEqual(normalize_phone_number("+"), "")


class TestContactResolver(unittest.TestCase):
    """Test merging and conflict handling."""

    def setUp(self):
        self.diagnostics = DiagnosticLog()
        self.resolver = ContactResolver(diagnostics=self.diagnostics)

    def test_unknown_then_real_name_merges_to_real_name(self):
        self.resolver.add_sms("+15551234567", "(Unknown)")
        self.resolver.add_sms("555-123-4567", "Alice")

        contact = self.resolver.contacts["5551234567"]
        self.assertEqual(contact.name, "Alice")
        self.assertEqual(contact.raw_numbers, ["+15551234567", "555-123-4567"])
        self.assertEqual(self.diagnostics.count(), 0)

    def test_real_name_is_not_replaced_by_unknown(self):
        self.resolver.add_sms("5551234567", "Alice")
        self.resolver.add_sms("+15551234567", "(Unknown)")
        self.resolver.add_sms("+15551234567", "")

        self.assertEqual(self.resolver.contacts["5551234567"].name, "Alice")
        self.assertEqual(self.diagnostics.count(), 0)

    def test_conflicting_names_keep_first_and_report(self):
        self.resolver.add_sms("5551234567", "Alice", source_file="sms-1.xml", record_index=0)
        self.resolver.add_sms("+1 555 123 4567", "Bob", source_file="sms-1.xml", record_index=7)

        self.assertEqual(self.resolver.contacts["5551234567"].name, "Alice")
        conflicts = self.diagnostics.by_category(DiagnosticCategory.CONTACT_CONFLICT)
        self.assertEqual(len(conflicts), 1)
        self.assertEqual(conflicts[0].message, "5551234567 has multiple names: Alice and Bob")
        self.assertEqual(conflicts[0].record_index, 7)

    def test_blank_name_becomes_unknown(self):
        self.resolver.add_sms("5551234567", "  ")
        self.assertEqual(self.resolver.contacts["5551234567"].name, "(Unknown)")

    def test_address_without_number_is_reported(self):
        self.resolver.add_sms("", "Alice")
        self.assertEqual(self.resolver.contacts, {})
        self.assertEqual(self.diagnostics.count(DiagnosticCategory.NORMALIZATION), 1)

    def test_mms_pairs_addresses_and_names_by_position(self):
        mms = MMS(address="+15551230001~+15551230002", contact_name="Alice, Bob")
        self.assertTrue(self.resolver.add_mms(mms.split_addresses(), mms.split_contact_names()))

        self.assertEqual(self.resolver.contacts["5551230001"].name, "Alice")
        self.assertEqual(self.resolver.contacts["5551230002"].name, "Bob")

    def test_more_addresses_than_names_is_skipped(self):
        mms = MMS(address="+15551230001~+15551230002", contact_name="Alice")
        self.resolver.resolve(mms_records=[mms])

        self.assertEqual(self.resolver.contacts, {})
        self.assertEqual(self.resolver.records_skipped, 1)
        mismatches = self.diagnostics.by_category(DiagnosticCategory.CONTACT_SPLIT_MISMATCH)
        self.assertEqual(len(mismatches), 1)
        self.assertEqual(mismatches[0].message, f"mms has 2 numbers, but 1 contact names. {MISSING_NAME_REASON}")

    def test_comma_inside_a_name_is_skipped(self):
        mms = MMS(address="+15551230001", contact_name="Smith, John")
        self.resolver.resolve(mms_records=[mms])

        self.assertEqual(self.resolver.contacts, {})
        mismatch = self.diagnostics.by_category(DiagnosticCategory.CONTACT_SPLIT_MISMATCH)[0]
        self.assertTrue(mismatch.message.endswith(COMMA_IN_NAME_REASON))

    def test_resolve_merges_sms_before_mms(self):
        mms = MMS(address="+15551230001~+15551230002", contact_name="Bob, Carol")
        sms = SMS(address="5551230001", contact_name="Alice")
        contacts = self.resolver.resolve(sms_records=[sms], mms_records=[mms])

        self.assertEqual(contacts["5551230001"].name, "Alice")
        self.assertEqual(contacts["5551230002"].name, "Carol")
        self.assertEqual(self.diagnostics.count(DiagnosticCategory.CONTACT_CONFLICT), 1)

    def test_sorted_contacts(self):
        self.resolver.add_sms("5551230003", "carol")
        self.resolver.add_sms("5551230001", "Bob")
        self.resolver.add_sms("5551230002", "alice")
        self.assertEqual([c.name for c in self.resolver.sorted_contacts()], ["alice", "Bob", "carol"])

    def test_default_diagnostics(self):
        resolver = ContactResolver()
        resolver.add_mms(["1", "2"], ["Alice"])
        self.assertEqual(resolver.diagnostics.count(DiagnosticCategory.CONTACT_SPLIT_MISMATCH), 1)


class TestContactCollectorSink(unittest.TestCase):
    """Test the streaming front end of the resolver."""

    def setUp(self):
        self.resolver = ContactResolver()
        self.sink = ContactCollectorSink(self.resolver)

    def test_committed_file_is_merged(self):
        self.sink.begin("sms-1.xml", BackupInfo())
        self.sink.accept(SMS(address="5551230001", contact_name="Alice"))
        self.sink.accept(Call(number="5551230009", contact_name="Zed"))
        self.sink.commit()

        self.assertEqual(list(self.resolver.contacts), ["5551230001"])

    def test_rolled_back_file_contributes_nothing(self):
        self.sink.begin("sms-1.xml", BackupInfo())
        self.sink.accept(SMS(address="5551230001", contact_name="Alice"))
        self.sink.rollback()
        self.sink.commit()

        self.assertEqual(self.resolver.contacts, {})

    def test_sms_merged_before_mms_within_a_file(self):
        self.sink.begin("sms-1.xml", BackupInfo())
        self.sink.accept(MMS(address="5551230001", contact_name="Bob"))
        self.sink.accept(SMS(address="5551230001", contact_name="Alice"))
        self.sink.commit()

        self.assertEqual(self.resolver.contacts["5551230001"].name, "Alice")

    def test_diagnostics_carry_file_and_index(self):
        self.sink.begin("sms-2.xml", BackupInfo())
        self.sink.accept(MMS(address="5551230001~5551230002", contact_name="Alice"))
        self.sink.commit()

        mismatch = self.resolver.diagnostics.by_category(DiagnosticCategory.CONTACT_SPLIT_MISMATCH)[0]
        self.assertEqual(mismatch.source_file, "sms-2.xml")
        self.assertEqual(mismatch.record_index, 0)


if __name__ == '__main__':
    unittest.main()
