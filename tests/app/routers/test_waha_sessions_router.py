"""Tests for the WAHA sessions router."""

from uuid import uuid4

import pytest

from app.config import get_settings
from app.exceptions import WahaServerError
from app.routers.utils.dependencies import (
    get_session_management_service,
    get_sync_service,
)
from app.services.waha_session_management_service import WahaSessionManagementService
from app.services.waha_sync_service import WahaSyncService


@pytest.fixture
def api_client(app_instance, client, db, mock_waha_client):
    sync_service = WahaSyncService(db, client=mock_waha_client)
    settings = get_settings().model_copy(update={"n8n_enabled": False})

    app_instance.dependency_overrides[get_sync_service] = lambda: sync_service
    app_instance.dependency_overrides[get_session_management_service] = (
        lambda: WahaSessionManagementService(
            db,
            client=mock_waha_client,
            sync_service=sync_service,
            settings=settings,
            sleep=lambda _: None,
        )
    )
    return client


def _headers(organization):
    return {"X-Organization-ID": str(organization.id)}


def test_missing_organization_header(api_client):
    assert api_client.get("/waha/sessions").status_code == 422


def test_unknown_organization(api_client):
    r = api_client.get("/waha/sessions", headers={"X-Organization-ID": str(uuid4())})
    assert r.status_code == 404


def test_list_sessions_syncs(api_client, mock_waha_client, setup_waha_session, setup_organization):
    mock_waha_client.get_sessions.return_value = [
        {"name": setup_waha_session.session_name, "status": "WORKING"}
    ]
    r = api_client.get("/waha/sessions", headers=_headers(setup_organization))
    assert r.status_code == 200
    body = r.json()
    assert body["total"] == 1
    assert body["updated"] == 1
    assert body["sessions"][0]["id"] == str(setup_waha_session.id)


def test_list_sessions_gateway_down(api_client, mock_waha_client, setup_organization):
    mock_waha_client.get_sessions.side_effect = WahaServerError(
        "down", operation="get_sessions", http_status=503
    )
    r = api_client.get("/waha/sessions", headers=_headers(setup_organization))
    assert r.status_code == 502
    assert "down" not in r.json()["detail"]


def test_create_session(api_client, mock_waha_client, setup_organization):
    mock_waha_client.create_session.return_value = {"status": "STARTING"}
    r = api_client.post(
        "/waha/sessions", json={"name": "Sales"}, headers=_headers(setup_organization)
    )
    assert r.status_code == 201
    data = r.json()["data"]
    assert data["session_name"].startswith(f"{setup_organization.id}_sales_")
    assert data["status"] == "connecting"


def test_get_session(api_client, setup_waha_session, setup_organization):
    r = api_client.get(
        f"/waha/sessions/{setup_waha_session.id}", headers=_headers(setup_organization)
    )
    assert r.status_code == 200
    assert r.json()["data"]["session_name"] == setup_waha_session.session_name


def test_get_session_of_other_tenant_404(
    api_client, setup_waha_session, setup_other_organization
):
    r = api_client.get(
        f"/waha/sessions/{setup_waha_session.id}",
        headers=_headers(setup_other_organization),
    )
    assert r.status_code == 404


def test_start_already_running_409(api_client, setup_connected_waha_session, setup_organization):
    r = api_client.post(
        f"/waha/sessions/{setup_connected_waha_session.id}/start",
        headers=_headers(setup_organization),
    )
    assert r.status_code == 409


def test_regenerate_qr(api_client, mock_waha_client, setup_waha_session, setup_organization):
    mock_waha_client.get_session_info.return_value = {"status": "SCAN_QR_CODE"}
    mock_waha_client.get_qr_code.return_value = {"mimetype": "image/png", "data": "b64"}
    r = api_client.post(
        f"/waha/sessions/{setup_waha_session.id}/regenerate-qr",
        headers=_headers(setup_organization),
    )
    assert r.status_code == 200
    assert r.json()["data"]["data"] == "b64"


def test_delete_by_name(api_client, mock_waha_client, setup_waha_session, setup_organization):
    mock_waha_client.delete_session.return_value = {"success": True}
    r = api_client.delete(
        f"/waha/sessions/by-name/{setup_waha_session.session_name}",
        headers=_headers(setup_organization),
    )
    assert r.status_code == 200
    assert r.json()["message"] == "Session deleted successfully"


def test_send_text(api_client, mock_waha_client, setup_connected_waha_session, setup_organization):
    mock_waha_client.send_text.return_value = {"id": "m1"}
    r = api_client.post(
        f"/waha/sessions/{setup_connected_waha_session.id}/messages/text",
        json={"chat_id": "628111@c.us", "text": "hi"},
        headers=_headers(setup_organization),
    )
    assert r.status_code == 200
    mock_waha_client.send_text.assert_called_once_with(
        setup_connected_waha_session.session_name, "628111@c.us", "hi"
    )


def test_get_chats(api_client, mock_waha_client, setup_connected_waha_session, setup_organization):
    mock_waha_client.get_chat_list.return_value = [{"id": "628111@c.us"}]
    r = api_client.get(
        f"/waha/sessions/{setup_connected_waha_session.id}/chats?limit=10",
        headers=_headers(setup_organization),
    )
    assert r.status_code == 200
    assert r.json()["data"] == [{"id": "628111@c.us"}]
    mock_waha_client.get_chat_list.assert_called_once_with(
        setup_connected_waha_session.session_name, 10
    )


def test_system_settings_hide_secrets(api_client):
    r = api_client.get("/system/settings")
    assert r.status_code == 200
    body = r.json()
    assert "api_key" not in body["waha"]
    assert body["waha"]["incoming_dedup_minutes"] == 5
