"""Tests for PayloadBuilder and the per-entity payload functions."""

from __future__ import annotations

from datetime import UTC, date, datetime

from dvspine.store.diagnostics import InvalidPropertyParser, RegexDiagnosticParser
from dvspine.store.payloads import (
    BatchInput,
    DocumentInput,
    PayloadBuilder,
    RecipientInput,
    acknowledgement_payload,
    batch_payload,
    business_payload,
    document_payload,
    progress_payload,
    recipient_payload,
)


class TestPayloadBuilder:
    """Fields, binds and removal."""

    def test_empty_attribute_ignored(self):
        builder = PayloadBuilder().set("", "x").set("toba_name", "n")
        assert builder.build() == {"toba_name": "n"}

    def test_none_value_left_out(self):
        builder = PayloadBuilder({"toba_description": None}).set("toba_name", "n").set("toba_duedate", None)
        assert builder.build() == {"toba_name": "n"}
        assert not builder.has("toba_duedate")

    def test_bind_key_and_value(self):
        builder = PayloadBuilder().bind("toba_Batch", "toba_batches", "abc")
        assert builder.build() == {"toba_Batch@odata.bind": "/toba_batches(abc)"}

    def test_bind_with_missing_part_ignored(self):
        builder = PayloadBuilder().bind("toba_Batch", "toba_batches", None).bind("", "x", "1")
        assert len(builder) == 0

    def test_rebind_replaces(self):
        builder = PayloadBuilder().bind("toba_Batch", "toba_batches", "1").bind("toba_Batch", "toba_batches", "2")
        assert builder.build() == {"toba_Batch@odata.bind": "/toba_batches(2)"}

    def test_remove_field_and_bind(self):
        builder = PayloadBuilder({"a": 1, "b": 2}).bind("toba_Batch", "s", "1").bind("toba_Business", "t", "2")
        assert builder.has("toba_Batch")
        assert builder.remove("toba_Batch") is True
        assert builder.remove("toba_Business@odata.bind") is True
        assert builder.remove("a") is True
        assert builder.remove("missing") is False
        assert builder.build() == {"b": 2}

    def test_copy_is_independent(self):
        original = PayloadBuilder({"a": 1})
        clone = original.copy()
        clone.remove("a")
        assert original.build() == {"a": 1}

    def test_key_order(self):
        builder = PayloadBuilder().bind("n", "s", "1").set("a", 1).set("b", 2)
        assert builder.keys() == ["a", "b", "n@odata.bind"]


class TestEntityPayloads:
    """Per-entity builders."""

    def test_batch(self):
        payload = batch_payload(
            BatchInput("HR Policies - 2026", date(2026, 1, 5), date(2026, 1, 12), "desc")
        ).build()
        assert payload == {
            "toba_name": "HR Policies - 2026",
            "toba_startdate": "2026-01-05",
            "toba_duedate": "2026-01-12",
            "toba_description": "desc",
            "toba_status": 1,
        }

    def test_batch_leaves_out_unset_optionals(self):
        assert batch_payload(BatchInput("Q3")).build() == {"toba_name": "Q3", "toba_status": 1}

    def test_document_omits_unavailable_fields(self):
        fields = {"title": "toba_title", "url": "toba_fileurl", "version": "", "requires_signature": ""}
        payload = document_payload(
            DocumentInput("Policy.pdf", "https://x/Policy.pdf", version=3),
            fields,
            batch_lookup="toba_Batch",
            batches_set="toba_batches",
            batch_id="b1",
        ).build()
        assert payload == {
            "toba_title": "Policy.pdf",
            "toba_fileurl": "https://x/Policy.pdf",
            "toba_Batch@odata.bind": "/toba_batches(b1)",
        }

    def test_recipient(self):
        recipient = RecipientInput("Jane.Doe@Contoso.com ", display_name="Jane Doe", department="HR")
        fields = {"email": "toba_email", "display_name": "toba_displayname", "department": "toba_department"}
        payload = recipient_payload(
            recipient,
            fields,
            batch_name="Q1",
            batch_lookup="toba_Batch",
            batches_set="toba_batches",
            batch_id="b1",
            business_lookup="toba_Business",
            businesses_set="toba_businesses",
            business_id="biz",
        ).build()
        assert payload["toba_name"] == "Recipient - Jane Doe - Q1"
        assert payload["toba_email"] == "jane.doe@contoso.com"
        assert payload["toba_department"] == "HR"
        assert payload["toba_Business@odata.bind"] == "/toba_businesses(biz)"

    def test_recipient_without_business(self):
        payload = recipient_payload(
            RecipientInput("a@b.com"),
            {},
            batch_name="Q1",
            batch_lookup="toba_Batch",
            batches_set="toba_batches",
            batch_id="b1",
        ).build()
        assert payload == {"toba_name": "Recipient - a@b.com - Q1", "toba_Batch@odata.bind": "/toba_batches(b1)"}

    def test_recipient_leaves_out_unset_optionals(self):
        fields = {
            "email": "toba_email",
            "display_name": "toba_displayname",
            "department": "toba_department",
            "job_title": "toba_jobtitle",
            "location": "toba_location",
            "primary_group": "toba_primarygroup",
        }
        payload = recipient_payload(
            RecipientInput("a@b.com", department="HR"),
            fields,
            batch_name="Q1",
            batch_lookup="toba_Batch",
            batches_set="toba_batches",
            batch_id="b1",
        ).build()
        assert payload == {
            "toba_name": "Recipient - a@b.com - Q1",
            "toba_email": "a@b.com",
            "toba_department": "HR",
            "toba_Batch@odata.bind": "/toba_batches(b1)",
        }

    def test_business(self):
        assert business_payload("Head Office", "HO").build() == {
            "toba_name": "Head Office",
            "toba_code": "HO",
            "toba_isactive": True,
        }

    def test_progress_and_ack(self):
        progress = progress_payload(
            "jane@x.com", "toba_user", acknowledged=0, total_documents=2,
            batch_lookup="toba_Batch", batches_set="toba_batches", batch_id="b1",
        ).build()
        assert progress["toba_user"] == "jane@x.com"
        assert progress["toba_totaldocs"] == 2

        ack = acknowledgement_payload(
            "jane@x.com", "", acknowledged_at=datetime(2026, 1, 1, tzinfo=UTC),
            batch_lookup="toba_Batch", batches_set="toba_batches", batch_id="b1",
            document_lookup="toba_Document", documents_set="toba_documents", document_id="d1",
        ).build()
        assert "" not in ack
        assert ack["toba_Document@odata.bind"] == "/toba_documents(d1)"
        assert ack["toba_ackdate"].startswith("2026-01-01T00:00:00")


class TestDiagnosticParsers:
    """Offending-property extraction."""

    def test_dataverse_phrase(self):
        text = '{"error":{"message":"Invalid property \'toba_bogus\' was found in entity \'x\'."}}'
        assert InvalidPropertyParser().parse_invalid_property(text) == "toba_bogus"

    def test_no_match(self):
        assert InvalidPropertyParser().parse_invalid_property("Something else broke") is None
        assert InvalidPropertyParser().parse_invalid_property("") is None

    def test_custom_regex(self):
        parser = RegexDiagnosticParser(r"column \"([^\"]+)\" does not exist")
        assert parser.parse_invalid_property('column "legacy_code" does not exist') == "legacy_code"
