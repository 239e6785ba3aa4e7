import pytest
import requests
from services.assistant_client import AssistantClient, AssistantClientError


class FakeResponse:
    def __init__(self, status=200, body=None, chunks=None):
        self.status_code = status
        self.ok = 200 <= status < 300
        self._body = body
        self._chunks = chunks or []
        self.encoding = None

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body

    def iter_content(self, chunk_size=None, decode_unicode=False):
        assert decode_unicode and self.encoding == "utf-8"
        yield from self._chunks

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeHTTP:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.posts = []

    def post(self, url, **kwargs):
        self.posts.append((url, kwargs))
        if self.error:
            raise self.error
        return self.response


def client_for(http):
    return AssistantClient(base_url="http://ai.local/", timeout=5, http=http)


def test_send_chat_returns_reply_and_action():
    http = FakeHTTP(FakeResponse(body={"reply": "Noted.", "action": {"action": "create_request"}}))
    result = client_for(http).send_chat([{"role": "user", "content": "hi"}])
    assert result == {"reply": "Noted.", "action": {"action": "create_request"}}
    url, kwargs = http.posts[0]
    assert url == "http://ai.local/api/assistant/chat"
    assert kwargs["json"] == {"messages": [{"role": "user", "content": "hi"}], "mode": "request"}


def test_send_chat_drops_non_object_action():
    http = FakeHTTP(FakeResponse(body={"reply": "ok", "action": "nope"}))
    assert client_for(http).send_chat([])["action"] is None


@pytest.mark.parametrize("http,message", [
    (FakeHTTP(FakeResponse(status=503, body={})), "Chat request failed: 503"),
    (FakeHTTP(error=requests.ConnectionError("refused")), "Chat request failed: refused"),
    (FakeHTTP(FakeResponse(body=ValueError("bad json"))), "Chat response was not valid JSON"),
])
def test_send_chat_failures(http, message):
    with pytest.raises(AssistantClientError) as err:
        client_for(http).send_chat([])
    assert str(err.value) == message


def test_stream_hides_action_split_across_chunks():
    chunks = ["Sure, ", "I'll add that. [ACTION", '_JSON]{"action":"create_request",', '"priority":"high"}[/ACTION_JSON]']
    http = FakeHTTP(FakeResponse(chunks=chunks))
    seen = []
    result = client_for(http).send_chat_stream([{"role": "user", "content": "x"}], seen.append)
    assert "".join(seen) == "Sure, I'll add that. "
    assert all("ACTION" not in s for s in seen)
    assert result["action"] == {"action": "create_request", "priority": "high"}
    assert result["full"] == "".join(chunks)
    assert http.posts[0][1]["stream"] is True


def test_stream_http_error():
    http = FakeHTTP(FakeResponse(status=500))
    with pytest.raises(AssistantClientError, match="Chat stream failed: 500"):
        client_for(http).send_chat_stream([], lambda text: None)
