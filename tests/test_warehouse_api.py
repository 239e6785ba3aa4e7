import json
import pytest
import requests
from schemas import Draft, DraftItem, Priority, Submitter
from services.warehouse_api import WarehouseAPI, WarehouseAPIError, validate_draft
from services.assistant_sessions import SessionLogger, SessionStoreClient


class FakeResponse:
    def __init__(self, status=200, body=None):
        self.status_code = status
        self.ok = 200 <= status < 300
        self.content = b"" if body is None else json.dumps(body).encode()
        self._body = body

    def json(self):
        if self._body is None:
            raise ValueError("empty")
        return self._body


class FakeHTTP:
    def __init__(self, *responses, error=None):
        self.responses = list(responses)
        self.error = error
        self.calls = []

    def request(self, method, url, headers=None, json=None):
        self.calls.append((method, url, json))
        if self.error:
            raise self.error
        return self.responses.pop(0)


def ready_draft():
    return Draft(site_name="Site A", priority=Priority.HIGH,
                 items=[DraftItem(material_id="MTR-1001", material_name="Steel Bolt M10", quantity=5)])


def test_fetch_materials_normalizes_rows():
    http = FakeHTTP(FakeResponse(body={"data": [
        {"id": "MTR-1001", "itemName": "Steel Bolt", "category": "Fasteners", "availableQuantity": 40},
        {"id": 77, "materialName": "Cable", "quantity": 3},
        {"itemName": "no id"},
    ]}))
    materials = WarehouseAPI(base_url="http://wh", http=http).fetch_materials()
    assert [(m.id, m.display_name, m.available_quantity) for m in materials] == [
        ("MTR-1001", "Steel Bolt", 40), ("77", "Cable", 3),
    ]
    assert http.calls[0][:2] == ("GET", "http://wh/api/warehouse/materials")


def test_fetch_sites_is_distinct_and_ordered():
    http = FakeHTTP(FakeResponse(body=[{"siteName": "B"}, {"siteName": "A"}, {"siteName": "B"}, {"x": 1}]))
    assert WarehouseAPI(base_url="http://wh", http=http).fetch_sites() == ["B", "A"]


def test_validate_draft():
    assert validate_draft(ready_draft()) == []
    errors = validate_draft(Draft(items=[DraftItem(material_id="", quantity=0)]))
    assert errors == [
        "Site name is required",
        "Priority is required",
        "Item #1: material not specified",
        "Item #1: quantity must be >= 1",
    ]


def test_submit_rejects_invalid_draft_without_calling_backend():
    http = FakeHTTP()
    with pytest.raises(WarehouseAPIError, match="At least one item is required"):
        WarehouseAPI(base_url="http://wh", http=http).submit_material_request(
            Draft(site_name="Site A", priority=Priority.LOW), Submitter(user_id="u")
        )
    assert http.calls == []


def test_submit_rejects_unresolved_items():
    draft = ready_draft()
    draft.items.append(DraftItem(material_id="", material_name="mystery", quantity=1))
    with pytest.raises(WarehouseAPIError, match="Unresolved material references remain."):
        WarehouseAPI(base_url="http://wh", http=FakeHTTP()).submit_material_request(draft, Submitter(user_id="u"))


def test_submit_posts_request_payload():
    http = FakeHTTP(FakeResponse(status=201, body={"id": "req-1"}))
    submitter = Submitter(user_id="u-1", username="alice", role="Site Engineer")
    result = WarehouseAPI(base_url="http://wh", http=http).submit_material_request(ready_draft(), submitter)
    assert result == {"id": "req-1"}
    method, url, payload = http.calls[0]
    assert (method, url) == ("POST", "http://wh/api/material-requests")
    assert payload["siteName"] == "Site A"
    assert payload["priority"] == "high"
    assert payload["items"] == [{"materialId": "MTR-1001", "quantity": 5}]
    assert payload["requestedBy"] == "u-1"
    assert payload["requestorRole"] == "Site Engineer"
    assert payload["status"] == "pending"


def test_backend_error_message_is_surfaced():
    http = FakeHTTP(FakeResponse(status=409, body={"message": "Insufficient stock for MTR-1001"}))
    with pytest.raises(WarehouseAPIError, match="Insufficient stock for MTR-1001"):
        WarehouseAPI(base_url="http://wh", http=http).submit_material_request(ready_draft(), Submitter(user_id="u"))


def test_network_errors_become_api_errors():
    http = FakeHTTP(error=requests.ConnectionError("no route"))
    with pytest.raises(WarehouseAPIError, match="no route"):
        WarehouseAPI(base_url="http://wh", http=http).fetch_sites()


def test_session_store_calls():
    http = FakeHTTP(FakeResponse(body={"id": "s-9"}), FakeResponse(status=204), FakeResponse(status=204))
    store = SessionStoreClient(base_url="http://wh", http=http)
    assert store.start_session("u-1") == "s-9"
    store.save_message("s-9", "user", "hello", action_type="create_request")
    store.update_session("s-9", "closed")
    assert http.calls == [
        ("POST", "http://wh/api/assistant/sessions", {"userId": "u-1", "status": "active"}),
        ("POST", "http://wh/api/assistant/sessions/s-9/messages",
         {"role": "user", "content": "hello", "actionType": "create_request"}),
        ("PATCH", "http://wh/api/assistant/sessions/s-9", {"status": "closed"}),
    ]


def test_session_logger_swallows_failures():
    store = SessionStoreClient(base_url="http://wh", http=FakeHTTP(error=requests.Timeout("slow")))
    logger = SessionLogger(store, "s-1")
    logger.log("user", "hello")
    SessionLogger(store).log("user", "no session, no call")
