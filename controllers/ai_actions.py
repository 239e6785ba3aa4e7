# controllers/ai_actions.py
from typing import List, Tuple
from schemas import Draft, DraftItem, PRIORITIES, Priority
from controllers.matching import CatalogIndex

CREATE_REQUEST = "create_request"


def _quantity(value) -> int:
    try:
        qty = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 1
    return qty if qty >= 1 else 1


def merge_action(draft: Draft, action: dict, catalog: CatalogIndex) -> Tuple[Draft, List[str]]:
    """Fold an AI action into a copy of the draft without overwriting user input.

    Site and notes are only filled when empty, priority only when valid and
    different, and items are added once per resolved material id.
    """
    draft = draft.model_copy(deep=True)
    updates = []

    site = action.get("siteName")
    if isinstance(site, str) and site.strip() and not draft.site_name:
        draft.site_name = site.strip()
        updates.append("site")

    priority = action.get("priority")
    if isinstance(priority, str) and priority.lower() in PRIORITIES:
        new_priority = Priority(priority.lower())
        if draft.priority != new_priority:
            draft.priority = new_priority
            updates.append("priority")

    items = action.get("items")
    if isinstance(items, list):
        existing = {i.material_id for i in draft.items}
        added = False
        for it in items:
            if not isinstance(it, dict):
                continue
            token = str(it.get("materialId") or it.get("materialName") or it.get("name") or "").strip()
            if not token:
                continue
            found = catalog.find(token)
            if not found or found[0].id in existing:
                continue
            first = found[0]
            draft.items.append(DraftItem(
                material_id=first.id,
                material_name=first.display_name or token,
                quantity=_quantity(it.get("quantity")),
            ))
            existing.add(first.id)
            added = True
        if added:
            updates.append("items")

    notes = action.get("notes")
    if isinstance(notes, str) and notes.strip() and not draft.notes:
        draft.notes = notes.strip()
        updates.append("notes")

    return draft, updates
