# controllers/matching.py
import re
import logging
from typing import List, NamedTuple, Optional
from schemas import MaterialRef

logger = logging.getLogger(__name__)

MAX_MATCHES = 8
MAX_PER_CATEGORY = 50
UNCATEGORIZED = "Uncategorized"

# "MTR-1001 x 5", "steel bolt 20", "cable qty 3", "MTR-1001x5"
ITEM_LINE = re.compile(
    r"^(?P<token>.+?)\s*(?:(?:(?<![a-z])x|\bqty|\bquantity)\s*)?(?P<qty>\d+)$",
    re.I,
)


class ParsedLine(NamedTuple):
    token: str
    qty: int


def parse_item_line(line: str) -> Optional[ParsedLine]:
    match = ITEM_LINE.search(line.strip())
    if not match:
        return None
    token = match.group("token").strip()
    qty = int(match.group("qty"))
    if not token or qty < 1:
        return None
    return ParsedLine(token, qty)


class CatalogIndex:
    """Materials and site names, loaded once per session and never refreshed."""

    def __init__(self, materials: List[MaterialRef] = None, sites: List[str] = None):
        self.materials = list(materials or [])
        self.sites = list(sites or [])

    @classmethod
    def load(cls, api) -> "CatalogIndex":
        materials, sites = [], []
        try:
            materials = api.fetch_materials()
        except Exception as e:
            logger.error("Failed to load materials: %s", e)
        try:
            sites = api.fetch_sites()
        except Exception as e:
            logger.error("Failed to load sites: %s", e)
        return cls(materials, sites)

    def find(self, token: str) -> List[MaterialRef]:
        """Exact id match wins outright; otherwise name substring matches in catalog order."""
        if not token:
            return []
        lower = token.lower()
        exact = [m for m in self.materials if m.id.lower() == lower]
        if exact:
            return exact
        partial = [
            m for m in self.materials
            if (m.item_name and lower in m.item_name.lower())
            or (m.material_name and lower in m.material_name.lower())
        ]
        return partial[:MAX_MATCHES]

    def is_known_site(self, name: str) -> bool:
        lower = name.lower()
        return any(s.lower() == lower for s in self.sites)

    def categories(self) -> List[str]:
        return sorted({m.category or UNCATEGORIZED for m in self.materials})

    def match_categories(self, requested: List[str]) -> List[str]:
        wanted = [r.lower() for r in requested if r]
        return [c for c in self.categories() if any(r in c.lower() for r in wanted)]

    def render_categories(self, categories: List[str]) -> str:
        lines = []
        for cat in categories:
            mats = [m for m in self.materials if (m.category or UNCATEGORIZED) == cat][:MAX_PER_CATEGORY]
            lines.append(f"Category: {cat}")
            if not mats:
                lines.append("  (no materials)")
            for m in mats:
                qty = m.available_quantity if m.available_quantity is not None else "n/a"
                if isinstance(qty, float) and qty.is_integer():
                    qty = int(qty)
                lines.append(f"  - {m.id} | {m.display_name} | Qty: {qty}")
        return "\n".join(lines)


def split_categories(text: str) -> List[str]:
    return [part.strip() for part in text.split(",") if part.strip()]
