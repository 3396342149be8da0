from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from conftest import make_ticket
from ticket_manager.core.exceptions import (
    ConflictException,
    ContextNotInitializedException,
    ResourceNotFoundException,
    ValidationException,
)
from ticket_manager.infrastructure.storage import AttachmentFile
from ticket_manager.main import create_app
from ticket_manager.tickets.domain import SearchTicketResult, TicketSummary
from ticket_manager.tickets.interfaces import controllers

BASE = "/api/v1/tickets"


@pytest.fixture
def ticket_client():
    app = create_app()
    manager = AsyncMock()

    app.dependency_overrides[controllers.get_ticket_manager] = lambda: manager

    client = TestClient(app)
    try:
        yield client, manager
    finally:
        app.dependency_overrides.clear()


# ========== Create ==========

def test_create_ticket_returns_created(ticket_client):
    client, manager = ticket_client
    manager.create_ticket = AsyncMock(return_value=make_ticket(5))

    response = client.post(f"{BASE}/create", json={
        "creator_email": "jane@example.com",
        "title": "Ticket 5",
        "description": "Invoice total is wrong",
        "priority": "high",
    })

    assert response.status_code == 201
    assert response.json()["ticket_id"] == 5
    dto = manager.create_ticket.await_args.args[0]
    assert dto.priority == "high"


def test_create_ticket_validates_payload(ticket_client):
    client, manager = ticket_client

    response = client.post(f"{BASE}/create", json={"creator_email": "jane@example.com", "description": "ok"})

    assert response.status_code == 422
    manager.create_ticket.assert_not_awaited()


def test_create_ticket_conflict_maps_to_409(ticket_client):
    client, manager = ticket_client
    manager.create_ticket = AsyncMock(side_effect=ConflictException("Ticket with title Dup already exists"))

    response = client.post(f"{BASE}/create", json={
        "creator_email": "jane@example.com", "title": "Dup", "description": "Duplicate title",
    })

    assert response.status_code == 409
    body = response.json()
    assert body["detail"] == "Ticket with title Dup already exists"
    assert body["error_type"] == "ConflictException"


# ========== Read ==========

def test_get_ticket_converts_timezone(ticket_client):
    client, manager = ticket_client
    manager.get_ticket_by_id = AsyncMock(return_value=make_ticket(1))

    response = client.get(f"{BASE}/1", params={"timezone": "Europe/Paris", "include_metadata": "true"})

    assert response.status_code == 200
    assert response.json()["created_date"] == "2024-03-02T10:15:00+01:00"
    manager.get_ticket_by_id.assert_awaited_once_with(1, True)


def test_get_ticket_not_found(ticket_client):
    client, manager = ticket_client
    manager.get_ticket_by_id = AsyncMock(return_value=None)

    response = client.get(f"{BASE}/99")

    assert response.status_code == 404


def test_validation_error_maps_to_400(ticket_client):
    client, manager = ticket_client
    manager.get_ticket_by_id = AsyncMock(side_effect=ValidationException("Ticket ID must be greater than zero."))

    response = client.get(f"{BASE}/0")

    assert response.status_code == 400
    assert response.json()["detail"] == "Ticket ID must be greater than zero."


def test_missing_context_maps_to_503(ticket_client):
    client, manager = ticket_client
    manager.get_number_of_tickets = AsyncMock(side_effect=ContextNotInitializedException())

    response = client.get(f"{BASE}/ticket-count")

    assert response.status_code == 503
    assert response.json()["detail"] == "Failed to initialize the database context."
    assert response.headers["Retry-After"] == "30"


def test_fetch_reports_cursor(ticket_client):
    client, manager = ticket_client
    manager.fetch_tickets = AsyncMock(return_value=[make_ticket(3), make_ticket(4)])

    response = client.get(f"{BASE}/fetch", params={"from_index": 2, "page_size": 2})

    body = response.json()
    assert [t["ticket_id"] for t in body["items"]] == [3, 4]
    assert body["has_more_records"] is True
    assert body["next_from"] == 4


def test_search_passes_filters(ticket_client):
    client, manager = ticket_client
    manager.search_tickets = AsyncMock(return_value=SearchTicketResult(tickets=[make_ticket(1)], total_count=11))

    response = client.get(f"{BASE}/search", params={
        "search": "invoice", "status": "Open", "priority": "High", "sort_by": "title",
        "ascending": "false", "page_number": 2, "page_size": 10, "search_mode": "StartsWith",
    })

    assert response.status_code == 200
    assert response.json()["total_count"] == 11
    kwargs = manager.search_tickets.await_args.kwargs
    assert kwargs["search_term"] == "invoice"
    assert kwargs["status"] == "Open"
    assert kwargs["priority"] == "High"
    assert kwargs["ascending"] is False
    assert kwargs["page_number"] == 2
    assert kwargs["search_mode"].value == "StartsWith"


def test_filter_by_keyword_returns_summaries(ticket_client):
    client, manager = ticket_client
    manager.filter_ticket_by = AsyncMock(return_value=[TicketSummary(
        title="Refund", description="Refund please", ticket_status="Open", tag="Billing",
        priority="High", creator_email="jane@example.com",
    )])

    response = client.get(f"{BASE}/search-keywords", params={"keyword": "refund"})

    assert response.status_code == 200
    assert response.json()[0]["title"] == "Refund"
    manager.filter_ticket_by.assert_awaited_once()


def test_date_range_rejects_reversed_dates(ticket_client):
    client, manager = ticket_client

    response = client.get(f"{BASE}/date-range", params={"start_date": "2024-03-09", "end_date": "2024-03-05"})

    assert response.status_code == 400
    manager.filter_ticket_by.assert_not_awaited()


def test_count_by_status(ticket_client):
    client, manager = ticket_client
    manager.get_number_of_tickets_by_status = AsyncMock(return_value=4)

    response = client.get(f"{BASE}/count-by-status", params={"status": "Closed"})

    assert response.json() == {"count": 4}
    manager.get_number_of_tickets_by_status.assert_awaited_once_with("Closed")


# ========== Update ==========

def test_update_status(ticket_client):
    client, manager = ticket_client
    manager.update_ticket_status = AsyncMock(return_value=make_ticket(1, ticket_status="Closed"))

    response = client.patch(f"{BASE}/1/status", json={"status": "closed"})

    assert response.status_code == 200
    assert response.json()["ticket_status"] == "Closed"
    manager.update_ticket_status.assert_awaited_once_with(1, "closed")


def test_update_missing_ticket_maps_to_404(ticket_client):
    client, manager = ticket_client
    manager.update_ticket = AsyncMock(side_effect=ResourceNotFoundException("Ticket", "8"))

    response = client.patch(f"{BASE}/8", json={"description": "New description"})

    assert response.status_code == 404
    assert response.json()["detail"] == "Ticket with id '8' not found"


def test_update_rejects_short_description(ticket_client):
    client, manager = ticket_client

    response = client.patch(f"{BASE}/1", json={"description": "ab"})

    assert response.status_code == 422
    manager.update_ticket.assert_not_awaited()


# ========== Attachments ==========

def test_add_attachments_reads_uploads(ticket_client):
    client, manager = ticket_client
    manager.update_ticket_attachment = AsyncMock(return_value=make_ticket(1))

    response = client.post(f"{BASE}/1/attachments", files=[("files", ("a.txt", b"abc", "text/plain"))])

    assert response.status_code == 200
    manager.update_ticket_attachment.assert_awaited_once_with(1, [AttachmentFile("a.txt", b"abc")])


def test_replace_attachment_passes_file_name(ticket_client):
    client, manager = ticket_client
    manager.update_ticket_attachment = AsyncMock(return_value=make_ticket(1))

    client.put(f"{BASE}/1/attachments/old.txt", files=[("files", ("new.txt", b"new", "text/plain"))])

    manager.update_ticket_attachment.assert_awaited_once_with(1, [AttachmentFile("new.txt", b"new")], "old.txt")


def test_list_attachments_hides_server_paths(ticket_client):
    client, manager = ticket_client
    manager.get_ticket_by_id = AsyncMock(return_value=make_ticket(
        1, attachments=["UploadedFiles/Ticket No.1/a.txt", "UploadedFiles\\Ticket No.1\\b.txt"],
    ))

    response = client.get(f"{BASE}/1/attachments")

    assert response.json() == {"ticket_id": 1, "attachments": ["a.txt", "b.txt"]}


def test_download_file(ticket_client, storage):
    client, manager = ticket_client
    path = storage.ticket_dir(1) / "report.txt"
    path.parent.mkdir(parents=True)
    path.write_bytes(b"report body")
    manager.get_ticket_by_id = AsyncMock(return_value=make_ticket(1, attachments=[str(path)]))
    manager.provider = SimpleNamespace(storage=storage)

    response = client.get(f"{BASE}/downloadfile", params={"ticket_id": 1, "file_name": "REPORT.txt"})

    assert response.status_code == 200
    assert response.content == b"report body"


def test_download_attachment_missing_on_disk(ticket_client, storage):
    client, manager = ticket_client
    path = storage.ticket_dir(1) / "gone.txt"
    manager.get_ticket_by_id = AsyncMock(return_value=make_ticket(1, attachments=[str(path)]))
    manager.provider = SimpleNamespace(storage=storage)

    response = client.get(f"{BASE}/downloadfile", params={"ticket_id": 1, "file_name": "gone.txt"})

    assert response.status_code == 404


def test_download_unknown_attachment(ticket_client):
    client, manager = ticket_client
    manager.get_ticket_by_id = AsyncMock(return_value=make_ticket(1))

    response = client.get(f"{BASE}/downloadfile", params={"ticket_id": 1, "file_name": "nope.txt"})

    assert response.status_code == 404


# ========== Delete ==========

def test_delete_ticket(ticket_client):
    client, manager = ticket_client
    manager.delete_ticket = AsyncMock(return_value=None)

    response = client.delete(f"{BASE}/3")

    assert response.status_code == 200
    assert response.json() == {"message": "Ticket deleted successfully.", "ticket_id": 3}


def test_delete_attachment(ticket_client):
    client, manager = ticket_client
    manager.delete_attachment = AsyncMock(return_value=None)

    response = client.delete(f"{BASE}/3/attachments/a.txt")

    assert response.status_code == 200
    manager.delete_attachment.assert_awaited_once_with(3, "a.txt")


# ========== App ==========

def test_routes_answer_503_without_manager():
    client = TestClient(create_app())

    response = client.get(f"{BASE}/ticket-count")

    assert response.status_code == 503


def test_health_reports_degraded_without_database():
    client = TestClient(create_app())

    response = client.get("/health", headers={"X-Correlation-ID": "abc-123"})

    assert response.status_code == 200
    assert response.json()["status"] == "degraded"
    assert response.headers["X-Correlation-ID"] == "abc-123"
    assert "X-Response-Time" in response.headers


def test_lifespan_starts_and_stops_manager_once(monkeypatch):
    manager = AsyncMock()
    monkeypatch.setattr("ticket_manager.main.create_ticket_manager", lambda settings: manager)

    with TestClient(create_app()) as client:
        assert client.app.state.ticket_manager is manager

    manager.start.assert_awaited_once()
    manager.stop.assert_awaited_once()
