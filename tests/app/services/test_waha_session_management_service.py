"""Tests for WahaSessionManagementService."""

import re
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from app.config import get_settings
from app.constants.waha import HealthStatus, SessionStatus
from app.core.waha_status import SessionConnectivity
from app.exceptions import (
    N8nError,
    WahaConnectionError,
    WahaNotFoundError,
    WahaServerError,
)
from app.models.n8n_workflow import N8nWorkflow
from app.models.waha_session import WahaSession
from app.services.n8n_workflow_service import N8nWorkflowService
from app.services.waha_session_management_service import (
    WahaSessionManagementService,
    generate_session_name,
)
from app.services.waha_sync_service import WahaSyncService


def _server_error(operation="op"):
    return WahaServerError("boom", operation=operation, http_status=500)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def n8n_service():
    return MagicMock(spec=N8nWorkflowService)


@pytest.fixture
def service(db, mock_waha_client, n8n_service, sleeps):
    settings = get_settings().model_copy(
        update={
            "waha_start_grace_seconds": 2,
            "waha_restart_grace_seconds": 3,
            "n8n_base_url": "http://n8n.test",
            "waha_default_webhook_url": "http://hooks.test/waha",
        }
    )
    sync_service = WahaSyncService(
        db, client=mock_waha_client, n8n_workflow_service=n8n_service
    )
    return WahaSessionManagementService(
        db,
        client=mock_waha_client,
        sync_service=sync_service,
        n8n_workflow_service=n8n_service,
        settings=settings,
        sleep=sleeps.append,
    )


# --- naming -------------------------------------------------------------


def test_generate_session_name():
    org_id = uuid4()
    assert re.fullmatch(rf"{org_id}_mainline_[0-9a-f]{{8}}", generate_session_name(org_id, "Main Line!"))
    assert re.fullmatch(rf"{org_id}_session-[0-9a-f]{{8}}", generate_session_name(org_id))
    assert re.fullmatch(rf"{org_id}_session-[0-9a-f]{{8}}", generate_session_name(org_id, "!!"))


# --- provisioning -------------------------------------------------------


def test_create_session_with_workflow(db, service, mock_waha_client, n8n_service, setup_organization):
    workflow = N8nWorkflow(
        organization_id=setup_organization.id, name="wf", n8n_workflow_id="42"
    )
    db.add(workflow)
    db.commit()
    n8n_service.create_workflow_with_database.return_value = {
        "workflow": workflow,
        "webhook_id": "hook-1",
    }
    mock_waha_client.create_session.return_value = {"name": "x", "status": "STARTING"}

    result = service.create_session(setup_organization.id, name="Support")

    assert result.success is True
    session_name = result.data["session_name"]
    assert session_name.startswith(f"{setup_organization.id}_support_")
    sent = mock_waha_client.create_session.call_args.args[0]
    assert sent["name"] == session_name
    assert sent["start"] is True
    assert sent["config"]["metadata"]["organization.code"] == setup_organization.org_code
    assert sent["config"]["metadata"]["n8n_webhook_id"] == "hook-1"
    assert all(isinstance(v, str) for v in sent["config"]["metadata"].values())
    urls = [hook["url"] for hook in sent["config"]["webhooks"]]
    assert len(urls) == 2
    assert all(hook["events"] == ["message", "session.status"] for hook in sent["config"]["webhooks"])

    kwargs = n8n_service.create_workflow_with_database.call_args.kwargs
    assert kwargs["label"] == f"waha_{session_name}"
    payload = n8n_service.create_workflow_with_database.call_args.args[0]
    assert payload["nodes"][0]["webhookId"] == f"{setup_organization.id}_{session_name}"

    local = db.query(WahaSession).one()
    assert local.session_name == session_name
    assert local.status == SessionStatus.CONNECTING
    assert local.n8n_workflow_id == workflow.id


def test_create_session_without_workflow_uses_default_webhook(
    db, service, mock_waha_client, n8n_service, setup_organization
):
    n8n_service.create_workflow_with_database.side_effect = N8nError("engine down")
    mock_waha_client.create_session.return_value = {}

    result = service.create_session(setup_organization.id)

    assert result.success is True
    sent = mock_waha_client.create_session.call_args.args[0]
    assert [hook["url"] for hook in sent["config"]["webhooks"]] == ["http://hooks.test/waha"]
    assert db.query(WahaSession).one().n8n_workflow_id is None


def test_create_session_gateway_failure_removes_workflow(
    db, service, mock_waha_client, n8n_service, setup_organization
):
    workflow = N8nWorkflow(organization_id=setup_organization.id, name="wf")
    db.add(workflow)
    db.commit()
    n8n_service.create_workflow_with_database.return_value = {
        "workflow": workflow,
        "webhook_id": "hook-1",
    }
    mock_waha_client.create_session.side_effect = _server_error("create_session")

    result = service.create_session(setup_organization.id)

    assert result.success is False
    assert result.code == 500
    n8n_service.delete_workflow_with_database.assert_called_once_with(workflow.id)
    assert db.query(WahaSession).count() == 0


def test_create_session_unknown_organization(service):
    result = service.create_session(uuid4())
    assert result.success is False
    assert result.code == 404


# --- start / stop / delete ----------------------------------------------


def test_start_session_two_phase_update(db, service, mock_waha_client, setup_waha_session):
    mock_waha_client.get_session_info.side_effect = [
        {"name": setup_waha_session.session_name, "status": "STOPPED"},
        {"name": setup_waha_session.session_name, "status": "SCAN_QR_CODE"},
    ]
    mock_waha_client.start_session.return_value = {}

    result = service.start_session(setup_waha_session.id, setup_waha_session.organization_id)

    assert result.success is True
    assert result.message == "Session started successfully"
    assert result.data["status"] == SessionStatus.CONNECTING
    mock_waha_client.start_session.assert_called_once_with(setup_waha_session.session_name, None)


def test_start_session_refetch_failure_falls_back_to_connecting(
    db, service, mock_waha_client, setup_waha_session
):
    mock_waha_client.get_session_info.side_effect = [
        {"status": "STOPPED"},
        WahaConnectionError("timeout", operation="get_session_info"),
    ]
    result = service.start_session(setup_waha_session.id, setup_waha_session.organization_id)
    assert result.success is True
    db.refresh(setup_waha_session)
    assert setup_waha_session.status == SessionStatus.CONNECTING


def test_start_session_reaching_working(db, service, mock_waha_client, setup_waha_session):
    mock_waha_client.get_session_info.side_effect = [{"status": "STOPPED"}, {"status": "WORKING"}]
    result = service.start_session(setup_waha_session.id, setup_waha_session.organization_id)
    assert result.data["status"] == SessionStatus.WORKING
    db.refresh(setup_waha_session)
    assert setup_waha_session.is_connected is True


def test_start_session_not_found(service, mock_waha_client, setup_organization):
    result = service.start_session(uuid4(), setup_organization.id)
    assert result.code == 404
    mock_waha_client.start_session.assert_not_called()


def test_start_session_of_other_tenant_is_not_found(
    service, mock_waha_client, setup_waha_session, setup_other_organization
):
    result = service.start_session(setup_waha_session.id, setup_other_organization.id)
    assert result.code == 404
    mock_waha_client.get_session_info.assert_not_called()


def test_start_session_already_connected(service, mock_waha_client, setup_connected_waha_session):
    result = service.start_session(
        setup_connected_waha_session.id, setup_connected_waha_session.organization_id
    )
    assert result.success is False
    assert result.code == 409
    mock_waha_client.start_session.assert_not_called()


def test_start_session_missing_on_gateway(db, service, mock_waha_client, setup_waha_session):
    mock_waha_client.get_session_info.side_effect = WahaNotFoundError(
        "missing", operation="get_session_info", http_status=404
    )
    result = service.start_session(setup_waha_session.id, setup_waha_session.organization_id)
    assert result.code == 404
    mock_waha_client.start_session.assert_not_called()
    db.refresh(setup_waha_session)
    assert setup_waha_session.status == SessionStatus.CONNECTING


def test_start_session_gateway_failure(db, service, mock_waha_client, setup_waha_session):
    mock_waha_client.get_session_info.return_value = {"status": "STOPPED"}
    mock_waha_client.start_session.side_effect = _server_error("start_session")
    result = service.start_session(setup_waha_session.id, setup_waha_session.organization_id)
    assert result.success is False
    assert result.code == 500
    assert "boom" not in result.message
    db.refresh(setup_waha_session)
    assert setup_waha_session.error_count == 1


def test_stop_session(db, service, mock_waha_client, setup_connected_waha_session):
    mock_waha_client.stop_session.return_value = {
        "name": setup_connected_waha_session.session_name,
        "status": "STOPPED",
    }
    result = service.stop_session(
        setup_connected_waha_session.id, setup_connected_waha_session.organization_id
    )
    assert result.success is True
    assert result.data["local_session_id"] == setup_connected_waha_session.id
    db.refresh(setup_connected_waha_session)
    assert setup_connected_waha_session.status == SessionStatus.DISCONNECTED
    assert setup_connected_waha_session.is_connected is False


def test_delete_session(db, service, mock_waha_client, setup_waha_session):
    mock_waha_client.delete_session.return_value = {"success": True}
    result = service.delete_session(
        setup_waha_session.session_name, setup_waha_session.organization_id
    )
    assert result.success is True
    assert db.query(WahaSession).count() == 0


def test_delete_session_not_found(service, setup_organization):
    result = service.delete_session("nope", setup_organization.id)
    assert result.code == 404


def test_delete_session_gateway_failure_keeps_row(db, service, mock_waha_client, setup_waha_session):
    mock_waha_client.delete_session.side_effect = _server_error("delete_session")
    result = service.delete_session(
        setup_waha_session.session_name, setup_waha_session.organization_id
    )
    assert result.code == 500
    assert db.query(WahaSession).count() == 1


def test_sync_session_status(db, service, mock_waha_client, setup_waha_session):
    mock_waha_client.get_session_info.return_value = {"status": "WORKING"}
    result = service.sync_session_status(setup_waha_session.id, setup_waha_session.organization_id)
    assert result.data["is_connected"] is True
    assert result.data["is_authenticated"] is True
    db.refresh(setup_waha_session)
    assert setup_waha_session.status == SessionStatus.WORKING


# --- QR codes -----------------------------------------------------------


def test_get_qr_code_connected_short_circuit(service, mock_waha_client, setup_connected_waha_session):
    result = service.get_qr_code(
        setup_connected_waha_session.id, setup_connected_waha_session.organization_id
    )
    assert result.data["connected"] is True
    mock_waha_client.get_qr_code.assert_not_called()


def test_get_qr_code_not_available(service, mock_waha_client, setup_waha_session):
    mock_waha_client.get_qr_code.side_effect = WahaNotFoundError("no qr", operation="get_qr_code")
    result = service.get_qr_code(setup_waha_session.id, setup_waha_session.organization_id)
    assert result.success is True
    assert result.message == "QR code not available"
    assert result.data["qr_code"] is None


def test_regenerate_qr_not_needed_when_connected(
    service, mock_waha_client, setup_connected_waha_session
):
    result = service.regenerate_qr_code(
        setup_connected_waha_session.id, setup_connected_waha_session.organization_id
    )
    assert result.success is True
    assert result.data["message"] == "QR code regeneration is not needed."
    mock_waha_client.get_qr_code.assert_not_called()


def test_regenerate_qr_starts_stopped_session(service, mock_waha_client, sleeps, setup_waha_session):
    mock_waha_client.get_session_info.return_value = {"status": "STOPPED"}
    mock_waha_client.get_qr_code.return_value = {"mimetype": "image/png", "data": "b64"}

    result = service.regenerate_qr_code(setup_waha_session.id, setup_waha_session.organization_id)

    assert result.success is True
    assert result.data["data"] == "b64"
    mock_waha_client.start_session.assert_called_once_with(setup_waha_session.session_name)
    mock_waha_client.restart_session.assert_not_called()
    assert sleeps == [2]


def test_regenerate_qr_bounded_retry(service, mock_waha_client, sleeps, setup_waha_session):
    mock_waha_client.get_session_info.return_value = {"status": "SCAN_QR_CODE"}
    mock_waha_client.get_qr_code.side_effect = [
        _server_error("get_qr_code"),
        _server_error("get_qr_code"),
        {"mimetype": "image/png", "data": "never-reached"},
    ]

    result = service.regenerate_qr_code(setup_waha_session.id, setup_waha_session.organization_id)

    assert result.success is False
    assert result.code == 500
    assert result.message == "Failed to get QR code even after restarting session."
    assert mock_waha_client.restart_session.call_count == 1
    assert mock_waha_client.get_qr_code.call_count == 2
    assert sleeps == [3]


def test_regenerate_qr_succeeds_after_restart(service, mock_waha_client, sleeps, setup_waha_session):
    mock_waha_client.get_session_info.return_value = {"status": "SCAN_QR_CODE"}
    mock_waha_client.get_qr_code.side_effect = [
        _server_error("get_qr_code"),
        {"mimetype": "image/png", "data": "b64"},
    ]
    result = service.regenerate_qr_code(setup_waha_session.id, setup_waha_session.organization_id)
    assert result.success is True
    assert mock_waha_client.restart_session.call_count == 1


def test_regenerate_qr_restart_failure(service, mock_waha_client, sleeps, setup_waha_session):
    mock_waha_client.get_session_info.return_value = {"status": "SCAN_QR_CODE"}
    mock_waha_client.get_qr_code.side_effect = _server_error("get_qr_code")
    mock_waha_client.restart_session.side_effect = _server_error("restart_session")
    result = service.regenerate_qr_code(setup_waha_session.id, setup_waha_session.organization_id)
    assert result.success is False
    assert result.message.startswith("Failed to restart session after QR fetch failure")
    assert mock_waha_client.get_qr_code.call_count == 1
    assert sleeps == []


# --- health and passthroughs --------------------------------------------


def test_get_session_health_connected(db, service, mock_waha_client, setup_waha_session):
    mock_waha_client.check_connectivity.return_value = SessionConnectivity.from_remote(
        {"status": "WORKING"}
    )
    result = service.get_session_health(setup_waha_session.id, setup_waha_session.organization_id)
    assert result.data["connectivity"] == "connected"
    db.refresh(setup_waha_session)
    assert setup_waha_session.health_status == HealthStatus.HEALTHY
    assert setup_waha_session.last_health_check is not None


def test_get_session_health_unknown_keeps_flags(
    db, service, mock_waha_client, setup_connected_waha_session
):
    mock_waha_client.check_connectivity.return_value = SessionConnectivity.unknown("timeout")
    result = service.get_session_health(
        setup_connected_waha_session.id, setup_connected_waha_session.organization_id
    )
    assert result.data["connectivity"] == "unknown"
    assert result.data["reason"] == "timeout"
    db.refresh(setup_connected_waha_session)
    assert setup_connected_waha_session.is_connected is True
    assert setup_connected_waha_session.health_status == HealthStatus.UNKNOWN


def test_send_text_message_counts(db, service, mock_waha_client, setup_connected_waha_session):
    mock_waha_client.send_text.return_value = {"id": "msg-1"}
    result = service.send_text_message(
        setup_connected_waha_session.id,
        setup_connected_waha_session.organization_id,
        "6281234567890@c.us",
        "hi",
    )
    assert result.success is True
    assert result.data == {"id": "msg-1"}
    db.refresh(setup_connected_waha_session)
    assert setup_connected_waha_session.total_messages_sent == 1


def test_send_media_message_counts_media(db, service, mock_waha_client, setup_connected_waha_session):
    mock_waha_client.send_media.return_value = {"id": "msg-2"}
    service.send_media_message(
        setup_connected_waha_session.id,
        setup_connected_waha_session.organization_id,
        "6281234567890@c.us",
        "http://x/img.png",
        "image/png",
    )
    db.refresh(setup_connected_waha_session)
    assert setup_connected_waha_session.total_media_sent == 1


def test_passthrough_gateway_failure_records_error(
    db, service, mock_waha_client, setup_connected_waha_session
):
    mock_waha_client.get_contacts.side_effect = _server_error("get_contacts")
    result = service.get_contacts(
        setup_connected_waha_session.id, setup_connected_waha_session.organization_id
    )
    assert result.success is False
    assert result.code == 500
    db.refresh(setup_connected_waha_session)
    assert setup_connected_waha_session.error_count == 1


def test_passthrough_requires_ownership(
    service, mock_waha_client, setup_connected_waha_session, setup_other_organization
):
    result = service.get_chat_list(setup_connected_waha_session.id, setup_other_organization.id)
    assert result.code == 404
    mock_waha_client.get_chat_list.assert_not_called()
