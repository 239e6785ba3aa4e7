import pytest
from schemas import MaterialRef, Submitter
from controllers.matching import CatalogIndex
from controllers.material_request_agent import MaterialRequestAgent
from services.warehouse_api import WarehouseAPIError


MATERIALS = [
    MaterialRef(id="MTR-1001", item_name="Steel Bolt M10", category="Fasteners", available_quantity=500),
    MaterialRef(id="MTR-1002", item_name="Steel Bolt M12", category="Fasteners", available_quantity=300),
    MaterialRef(id="MTR-2001", material_name="Fiber Optic Cable", category="FTTH", available_quantity=1000),
    MaterialRef(id="CABLE-12", item_name="Cable Tie 12in", category="Accessories"),
    MaterialRef(id="MTR-3001", item_name="Safety Helmet", category="Safety", available_quantity=50),
    MaterialRef(id="BOLT", item_name="Anchor Bolt"),
]

SITES = ["Site A", "Harbour Depot"]


class FakeWarehouse:
    def __init__(self, materials=None, sites=None):
        self.materials = list(MATERIALS if materials is None else materials)
        self.sites = list(SITES if sites is None else sites)
        self.submissions = []
        self.fail_with = None

    def fetch_materials(self):
        return list(self.materials)

    def fetch_sites(self):
        return list(self.sites)

    def submit_material_request(self, draft, submitter):
        if self.fail_with:
            raise WarehouseAPIError(self.fail_with)
        self.submissions.append((draft.to_payload(), submitter.to_meta()))
        return {"id": f"req-{len(self.submissions)}"}


class FakeStore:
    def __init__(self):
        self.started = []
        self.saved = []
        self.updates = []
        self.fail_saves = False
        self.fail_start = False

    def start_session(self, user_id):
        if self.fail_start:
            raise WarehouseAPIError("store offline")
        session_id = f"sess-{len(self.started) + 1}"
        self.started.append((user_id, session_id))
        return session_id

    def save_message(self, session_id, role, content, action_type=None):
        if self.fail_saves:
            raise RuntimeError("write rejected")
        self.saved.append((session_id, role, content, action_type))

    def update_session(self, session_id, status):
        self.updates.append((session_id, status))


class FakeChat:
    def __init__(self, reply="", action=None, chunks=None, error=None):
        self.reply = reply
        self.action = action
        self.chunks = chunks or []
        self.error = error
        self.calls = []

    def send_chat(self, messages, mode="request"):
        self.calls.append(("chat", messages))
        if self.error:
            raise self.error
        return {"reply": self.reply, "action": self.action}

    def send_chat_stream(self, messages, on_chunk):
        from services.action_stream import ActionStreamParser

        self.calls.append(("stream", messages))
        if self.error:
            raise self.error
        parser = ActionStreamParser()
        for chunk in self.chunks:
            text = parser.feed(chunk)
            if text:
                on_chunk(text)
        tail = parser.close()
        if tail:
            on_chunk(tail)
        return {"full": parser.raw, "action": parser.action}


@pytest.fixture
def catalog():
    return CatalogIndex(MATERIALS, SITES)


@pytest.fixture
def warehouse():
    return FakeWarehouse()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def chat():
    return FakeChat()


@pytest.fixture
def engineer():
    return Submitter(user_id="u-1", username="alice", role="Site Engineer")


@pytest.fixture
def make_agent(warehouse, store, chat, engineer):
    def factory(user=engineer, **kwargs):
        kwargs.setdefault("api", warehouse)
        kwargs.setdefault("store", store)
        kwargs.setdefault("chat", chat)
        kwargs.setdefault("reset_delay", 0)
        return MaterialRequestAgent(user=user, **kwargs).start()
    return factory
