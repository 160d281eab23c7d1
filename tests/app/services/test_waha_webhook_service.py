"""Tests for WahaWebhookService."""

import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from app.config import get_settings
from app.constants.waha import SenderType, SessionStatus, WebhookLogStatus
from app.exceptions import ValidationFault
from app.models.chat_session import ChatSession
from app.models.customer import Customer
from app.models.message import Message
from app.models.webhook_log import WebhookLog
from app.services.waha_sync_service import WahaSyncService
from app.services.waha_webhook_service import WahaWebhookService
from tests.fixtures.waha_fixtures import make_waha_session


@pytest.fixture
def settings():
    return get_settings().model_copy(
        update={
            "waha_webhook_validate_signature": True,
            "waha_webhook_secret": "shh",
        }
    )


@pytest.fixture
def webhook_service(db, mock_waha_client, settings):
    return WahaWebhookService(
        db,
        sync_service=WahaSyncService(db, client=mock_waha_client),
        settings=settings,
    )


def incoming_payload(session_name, message_id="false_6281234567890@c.us_AAA", **overrides):
    message = {
        "id": message_id,
        "from": "6281234567890@c.us",
        "to": "6289999999999@c.us",
        "body": "halo",
        "fromMe": False,
        "timestamp": 1700000000,
        "pushName": "Budi",
    }
    message.update(overrides)
    return {"event": "message", "session": session_name, "payload": message}


def outgoing_payload(session_name, message_id=None, text="Terima kasih", **overrides):
    message = {
        "from": "6289999999999@c.us",
        "to": "6281234567890@c.us",
        "body": text,
        "fromMe": True,
    }
    if message_id is not None:
        message["id"] = message_id
    message.update(overrides)
    return {"event": "message.any", "session": session_name, "payload": message}


def _sign(body: bytes, secret: str = "shh") -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


# --- signature ----------------------------------------------------------


def test_validate_signature(webhook_service):
    body = b'{"event":"message"}'
    assert webhook_service.validate_signature(body, _sign(body))
    assert not webhook_service.validate_signature(body, _sign(body, "other"))
    assert not webhook_service.validate_signature(body, None)


def test_validate_signature_disabled_accepts_everything(db):
    service = WahaWebhookService(
        db,
        settings=get_settings().model_copy(
            update={"waha_webhook_validate_signature": False}
        ),
    )
    assert service.validate_signature(b"anything", None)


# --- session resolution -------------------------------------------------


def test_resolve_session(db, webhook_service, setup_waha_session):
    assert webhook_service.resolve_session(setup_waha_session.session_name).id == setup_waha_session.id
    assert webhook_service.resolve_session("unknown") is None
    assert webhook_service.resolve_session(None) is None


def test_resolve_session_ambiguous_name(
    db, webhook_service, setup_organization, setup_other_organization
):
    make_waha_session(db, setup_organization, "shared-name")
    make_waha_session(db, setup_other_organization, "shared-name")
    assert webhook_service.resolve_session("shared-name") is None


# --- incoming path ------------------------------------------------------


def test_incoming_message_is_persisted_and_logged(db, webhook_service, setup_waha_session):
    org_id = setup_waha_session.organization_id
    result = webhook_service.handle_webhook_event(
        incoming_payload(setup_waha_session.session_name), org_id, setup_waha_session
    )

    assert result.success is True
    assert result.message == "Incoming message event processed"
    logs = db.query(WebhookLog).all()
    assert len(logs) == 1
    assert logs[0].status == WebhookLogStatus.PROCESSED
    assert logs[0].message_id == "false_6281234567890@c.us_AAA"

    message = db.query(Message).one()
    assert message.sender_type == SenderType.CUSTOMER
    assert message.metadata_["waha_message_id"] == "false_6281234567890@c.us_AAA"
    customer = db.query(Customer).one()
    assert customer.phone == "6281234567890"
    assert customer.name == "Budi"
    db.refresh(setup_waha_session)
    assert setup_waha_session.total_messages_received == 1


def test_incoming_duplicate_within_window(db, webhook_service, setup_waha_session):
    org_id = setup_waha_session.organization_id
    payload = incoming_payload(setup_waha_session.session_name)

    first = webhook_service.handle_webhook_event(payload, org_id, setup_waha_session)
    second = webhook_service.handle_webhook_event(payload, org_id, setup_waha_session)

    assert first.success is True
    assert second.success is False
    assert second.data["status"] == "duplicate"
    assert db.query(WebhookLog).count() == 1
    assert db.query(Message).count() == 1


def test_incoming_duplicate_detected_from_ledger_alone(db, webhook_service, setup_organization):
    db.add(
        WebhookLog(
            message_id="ledger-only",
            organization_id=setup_organization.id,
            webhook_type="whatsapp_waha",
            status=WebhookLogStatus.PROCESSED,
            payload={},
        )
    )
    db.commit()
    assert webhook_service.is_message_already_processed("ledger-only", setup_organization.id)


def test_incoming_ledger_outside_window_is_not_duplicate(
    db, webhook_service, setup_organization
):
    db.add(
        WebhookLog(
            message_id="old-one",
            organization_id=setup_organization.id,
            webhook_type="whatsapp_waha",
            status=WebhookLogStatus.PROCESSED,
            payload={},
            created_at=datetime.now(timezone.utc) - timedelta(minutes=10),
        )
    )
    db.commit()
    assert not webhook_service.is_message_already_processed("old-one", setup_organization.id)


def test_incoming_dedup_is_scoped_to_organization(
    db, webhook_service, setup_waha_session, setup_other_organization
):
    webhook_service.handle_webhook_event(
        incoming_payload(setup_waha_session.session_name),
        setup_waha_session.organization_id,
        setup_waha_session,
    )
    assert not webhook_service.is_message_already_processed(
        "false_6281234567890@c.us_AAA", setup_other_organization.id
    )


def test_failed_handoff_writes_no_ledger_row(db, mock_waha_client, settings, setup_waha_session):
    handler = MagicMock(side_effect=ValidationFault("no phone"))
    service = WahaWebhookService(
        db,
        sync_service=WahaSyncService(db, client=mock_waha_client),
        incoming_handler=handler,
        settings=settings,
    )
    result = service.handle_webhook_event(
        incoming_payload(setup_waha_session.session_name),
        setup_waha_session.organization_id,
        setup_waha_session,
    )
    assert result.success is False
    assert result.code == 400
    assert db.query(WebhookLog).count() == 0


def test_invalid_message_format(webhook_service, setup_organization):
    result = webhook_service.handle_webhook_event(
        {"event": "message", "payload": "not-an-object"}, setup_organization.id
    )
    assert result.success is False
    assert result.code == 400


# --- outgoing path ------------------------------------------------------


def test_outgoing_attributed_to_default_bot(
    db, webhook_service, setup_chat_session, setup_bot_personality
):
    org_id = setup_chat_session.organization_id
    result = webhook_service.handle_webhook_event(
        outgoing_payload("s1", message_id="true_6281234567890@c.us_OUT1"), org_id
    )
    assert result.success is True
    assert result.data["stored"] is True
    message = db.query(Message).one()
    assert message.sender_type == SenderType.BOT
    assert message.sender_id == setup_bot_personality.id
    assert message.session_id == setup_chat_session.id
    assert message.metadata_["direction"] == "outgoing"


def test_outgoing_attributed_to_assigned_agent(
    db, webhook_service, setup_chat_session, setup_agent, setup_bot_personality
):
    setup_chat_session.agent_id = setup_agent.id
    db.commit()
    webhook_service.handle_webhook_event(
        outgoing_payload("s1"), setup_chat_session.organization_id
    )
    message = db.query(Message).one()
    assert message.sender_type == SenderType.AGENT
    assert message.sender_id == setup_agent.id


def test_outgoing_falls_back_to_system_bot(db, webhook_service, setup_chat_session):
    webhook_service.handle_webhook_event(
        outgoing_payload("s1"), setup_chat_session.organization_id
    )
    message = db.query(Message).one()
    assert message.sender_type == SenderType.BOT
    assert message.sender_id is None
    assert message.sender_name == "System Bot"


def test_outgoing_duplicate_content_within_window(db, webhook_service, setup_chat_session):
    org_id = setup_chat_session.organization_id
    webhook_service.handle_webhook_event(outgoing_payload("s1"), org_id)
    webhook_service.handle_webhook_event(outgoing_payload("s1"), org_id)
    assert db.query(Message).count() == 1


def test_outgoing_duplicate_content_after_window_is_stored(
    db, mock_waha_client, settings, setup_chat_session
):
    service = WahaWebhookService(
        db,
        sync_service=WahaSyncService(db, client=mock_waha_client),
        settings=settings.model_copy(update={"waha_outgoing_dedup_seconds": 10}),
    )
    org_id = setup_chat_session.organization_id
    service.handle_webhook_event(outgoing_payload("s1"), org_id)
    first = db.query(Message).one()
    first.created_at = datetime.now(timezone.utc) - timedelta(seconds=30)
    db.commit()

    result = service.handle_webhook_event(outgoing_payload("s1"), org_id)

    assert result.data["stored"] is True
    assert db.query(Message).count() == 2


def test_outgoing_duplicate_native_id(db, webhook_service, setup_chat_session):
    org_id = setup_chat_session.organization_id
    webhook_service.handle_webhook_event(
        outgoing_payload("s1", message_id="true_X_1", text="first"), org_id
    )
    result = webhook_service.handle_webhook_event(
        outgoing_payload("s1", message_id="true_X_1", text="edited"), org_id
    )
    assert result.data["stored"] is False
    assert db.query(Message).count() == 1


def test_outgoing_with_agent_duplicate_content(
    db, webhook_service, setup_chat_session, setup_agent
):
    setup_chat_session.agent_id = setup_agent.id
    db.commit()
    org_id = setup_chat_session.organization_id
    webhook_service.handle_webhook_event(outgoing_payload("s1"), org_id)
    webhook_service.handle_webhook_event(outgoing_payload("s1"), org_id)
    assert db.query(Message).count() == 1


def test_outgoing_without_customer_writes_nothing(db, webhook_service, setup_organization):
    result = webhook_service.handle_webhook_event(
        outgoing_payload("s1"), setup_organization.id
    )
    assert result.success is True
    assert result.data["stored"] is False
    assert db.query(Message).count() == 0
    assert db.query(Customer).count() == 0
    assert db.query(ChatSession).count() == 0


def test_outgoing_without_active_chat_session_writes_nothing(
    db, webhook_service, setup_customer
):
    result = webhook_service.handle_webhook_event(
        outgoing_payload("s1"), setup_customer.organization_id
    )
    assert result.data["stored"] is False
    assert db.query(Message).count() == 0


# --- other events -------------------------------------------------------


@pytest.mark.parametrize("event", ["message.ack", "presence.update", "call.received"])
def test_ack_only_events(db, webhook_service, setup_organization, event):
    result = webhook_service.handle_webhook_event(
        {"event": event, "payload": {}}, setup_organization.id
    )
    assert result.success is True
    assert db.query(WebhookLog).count() == 0


def test_unknown_event_acknowledged(webhook_service, setup_organization):
    result = webhook_service.handle_webhook_event(
        {"event": "something.new", "payload": {}}, setup_organization.id
    )
    assert result.success is True
    assert result.message == "Event type not handled but acknowledged"


@pytest.mark.parametrize("event", [["message"], {"name": "message"}, 42])
def test_non_string_event_acknowledged(db, webhook_service, setup_organization, event):
    result = webhook_service.handle_webhook_event(
        {"event": event, "session": "s1", "payload": {"body": "halo"}},
        setup_organization.id,
    )
    assert result.success is True
    assert result.message == "Event type not handled but acknowledged"
    assert db.query(Message).count() == 0


def test_session_status_event_with_non_string_status(webhook_service, setup_waha_session):
    result = webhook_service.handle_webhook_event(
        {
            "event": "session.status",
            "session": setup_waha_session.session_name,
            "payload": {"status": ["WORKING"]},
        },
        setup_waha_session.organization_id,
    )
    assert result.success is False
    assert result.code == 400


def test_session_status_event(db, webhook_service, setup_waha_session):
    result = webhook_service.handle_webhook_event(
        {
            "event": "session.status",
            "session": setup_waha_session.session_name,
            "payload": {"status": "WORKING"},
        },
        setup_waha_session.organization_id,
    )
    assert result.success is True
    assert result.data["updated"] is True
    db.refresh(setup_waha_session)
    assert setup_waha_session.status == SessionStatus.WORKING


# --- maintenance --------------------------------------------------------


def test_prune_webhook_logs(db, webhook_service, setup_organization):
    now = datetime.now(timezone.utc)
    for i, age in enumerate((1, 10)):
        db.add(
            WebhookLog(
                message_id=f"m{i}",
                organization_id=setup_organization.id,
                webhook_type="whatsapp_waha",
                status=WebhookLogStatus.PROCESSED,
                payload={},
                created_at=now - timedelta(days=age),
            )
        )
    db.commit()

    assert webhook_service.prune_webhook_logs(retention_days=7) == 1
    assert [log.message_id for log in db.query(WebhookLog).all()] == ["m0"]
