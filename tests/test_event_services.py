import uuid
from unittest.mock import patch

from app.services.event import EventType, publish_event


class TestEventType:
    def test_all_event_types_have_dotted_values(self) -> None:
        for et in EventType:
            assert "." in et.value, f"{et.name} value should contain a dot"

    def test_event_type_count(self) -> None:
        assert len(EventType) == 21

    def test_document_events(self) -> None:
        assert EventType.document_forked.value == "document.forked"
        assert EventType.document_issued.value == "document.issued"
        assert EventType.document_issue_failed.value == "document.issue_failed"
        assert EventType.document_superseded.value == "document.superseded"

    def test_action_events(self) -> None:
        assert EventType.action_closed.value == "action.closed"
        assert EventType.action_reopened.value == "action.reopened"

    def test_access_token_events(self) -> None:
        assert EventType.access_token_created.value == "access_token.created"
        assert EventType.access_token_revoked.value == "access_token.revoked"
        assert EventType.access_token_resolved.value == "access_token.resolved"

    def test_integrity_event(self) -> None:
        assert EventType.pdf_integrity_mismatch.value == "pdf.integrity_mismatch"


class TestPublishEvent:
    def test_publish_calls_delay(self, _no_event_dispatch) -> None:
        entity_id = uuid.uuid4()
        actor_id = uuid.uuid4()
        publish_event(
            EventType.document_issued,
            entity_type="document",
            entity_id=entity_id,
            actor_id=actor_id,
            payload={"version_number": 1},
        )
        _no_event_dispatch.assert_called_once_with(
            event_type="document.issued",
            entity_type="document",
            entity_id=str(entity_id),
            actor_id=str(actor_id),
            document_id=None,
            organisation_id=None,
            payload={"version_number": 1},
        )

    def test_publish_defaults_empty_payload(self, _no_event_dispatch) -> None:
        publish_event(EventType.action_deleted, entity_type="action", entity_id="a1")
        assert _no_event_dispatch.call_args.kwargs["payload"] == {}

    def test_publish_swallows_errors(self) -> None:
        with patch(
            "app.tasks.events.process_event.delay",
            side_effect=ConnectionError("broker down"),
        ):
            # Must not raise.
            publish_event(
                EventType.document_created, entity_type="document", entity_id="d1"
            )
