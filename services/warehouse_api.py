# services/warehouse_api.py
import logging
import time
import datetime
import requests
from typing import List, Optional
from config import load_settings
from schemas import Draft, MaterialRef, Submitter

logger = logging.getLogger(__name__)


class WarehouseAPIError(Exception):
    """Human-readable failure from the warehouse backend."""


def validate_draft(draft: Draft) -> List[str]:
    errors = []
    if not draft.site_name.strip():
        errors.append("Site name is required")
    if not draft.priority:
        errors.append("Priority is required")
    if not draft.items:
        errors.append("At least one item is required")
    for idx, item in enumerate(draft.items, 1):
        if not item.material_id and not item.material_name:
            errors.append(f"Item #{idx}: material not specified")
        if not item.quantity or item.quantity < 1:
            errors.append(f"Item #{idx}: quantity must be >= 1")
    return errors


class BackendClient:
    """JSON-over-HTTP access to the warehouse backend."""

    def __init__(self, base_url: Optional[str] = None, http=None):
        settings = load_settings()
        self.base_url = (base_url or settings.warehouse_api_base).rstrip("/")
        self.http = http or requests.Session()
        self.headers = {"Content-Type": "application/json"}
        if settings.warehouse_api_token:
            self.headers["Authorization"] = f"Bearer {settings.warehouse_api_token}"
        if settings.warehouse_session_key:
            self.headers["x-session-key"] = settings.warehouse_session_key

    def _request(self, method: str, endpoint: str, payload: dict = None):
        url = f"{self.base_url}{endpoint}"
        logger.debug("[API CALL] → %s %s", method, endpoint)
        try:
            response = self.http.request(method, url, headers=self.headers, json=payload)
        except requests.RequestException as e:
            logger.error("API Error (%s): %s", endpoint, e)
            raise WarehouseAPIError(str(e)) from e

        if not response.ok:
            message = f"{method} {endpoint} failed with status {response.status_code}"
            try:
                body = response.json()
                if isinstance(body, dict) and body.get("message"):
                    message = str(body["message"])
            except ValueError:
                pass
            logger.error("API Error (%s): %s", endpoint, message)
            raise WarehouseAPIError(message)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise WarehouseAPIError(f"Invalid JSON from {endpoint}") from e

    def _get(self, endpoint: str):
        return self._request("GET", endpoint)

    def _post(self, endpoint: str, payload: dict = None):
        return self._request("POST", endpoint, payload or {})

    def _patch(self, endpoint: str, payload: dict = None):
        return self._request("PATCH", endpoint, payload or {})

    @staticmethod
    def _rows(data) -> list:
        # Accepts {"data": [...]}, {"data": {"rows": [...]}} or a bare list.
        if isinstance(data, dict):
            inner = data.get("data", [])
            if isinstance(inner, dict):
                inner = inner.get("rows", [])
            return inner if isinstance(inner, list) else []
        if isinstance(data, list):
            return data
        return []


class WarehouseAPI(BackendClient):
    """Catalog lookups and the material-request submission sink."""

    def fetch_materials(self) -> List[MaterialRef]:
        data = self._get("/api/warehouse/materials")
        materials = []
        for item in self._rows(data):
            if not isinstance(item, dict) or item.get("id") in (None, ""):
                continue
            available = item.get("availableQuantity", item.get("quantity"))
            materials.append(MaterialRef(
                id=str(item["id"]),
                item_name=item.get("itemName"),
                material_name=item.get("materialName"),
                category=item.get("category"),
                unit=item.get("unit"),
                available_quantity=available if isinstance(available, (int, float)) else None,
            ))
        logger.info("[API RESPONSE] ← %d materials", len(materials))
        return materials

    def fetch_sites(self) -> List[str]:
        """Distinct site names seen on existing material requests."""
        data = self._get("/api/material-requests")
        names = []
        for item in self._rows(data):
            if isinstance(item, dict) and item.get("siteName"):
                name = str(item["siteName"])
                if name not in names:
                    names.append(name)
        logger.info("[API RESPONSE] ← %d sites", len(names))
        return names

    def submit_material_request(self, draft: Draft, submitter: Submitter) -> dict:
        errors = validate_draft(draft)
        if errors:
            raise WarehouseAPIError("; ".join(errors))
        if any(not i.material_id for i in draft.items):
            raise WarehouseAPIError("Unresolved material references remain.")

        now = datetime.datetime.now(datetime.timezone.utc).isoformat()
        meta = submitter.to_meta()
        payload = {
            "siteName": draft.site_name,
            "siteId": f"site-{int(time.time() * 1000)}",
            "priority": draft.priority.value,
            "notes": draft.notes or "",
            "items": [{"materialId": i.material_id, "quantity": i.quantity} for i in draft.items],
            "createdAt": now,
            "requestDate": now,
            "requestedBy": meta["userId"],
            "requestedByUsername": meta["username"],
            "requestorRole": meta["role"],
            "status": "pending",
        }
        logger.info("[API CALL] → submit material request (%d items)", len(draft.items))
        result = self._post("/api/material-requests", payload)
        return result if isinstance(result, dict) else {}
