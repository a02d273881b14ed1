import httpx
import pytest

from okr_agent.domain.exceptions import ApiError, NetworkError, RateLimitError, ValidationError
from okr_agent.domain.models import ChatMessage, ChatRequest
from okr_agent.providers import OpenAICompatibleClient, as_completion
from okr_agent.providers.registry import GLM_CONFIG, KIMI_CONFIG, get_provider_config


class SettingsStub:
    glm_api_key = "glm-test-key"
    glm_base_url = "https://glm.example/v4"
    kimi_api_key = None
    kimi_base_url = "https://kimi.example/v1"
    http_timeout = 1.0


class Resp:
    def __init__(self, status_code=200, data=None, text=""):
        self.status_code = status_code
        self._data = data or {}
        self.text = text

    def json(self):
        return self._data


def fake_client(resp, calls):
    class Client:
        def __init__(self, *a, **kw):
            calls.append(("init", kw))

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, json=None, headers=None):
            calls.append(("post", url, json, headers))
            if isinstance(resp, Exception):
                raise resp
            return resp

    return Client


def make_request(model="okr-chat"):
    return ChatRequest(provider="glm", model=model, messages=[ChatMessage(role="user", content="hi")])


OK_BODY = {
    "choices": [{"index": 0, "message": {"role": "assistant", "content": "ok"}, "finish_reason": "stop"}],
    "usage": {"prompt_tokens": 1, "completion_tokens": 1, "total_tokens": 2},
}


def test_chat_posts_openai_compatible_payload(monkeypatch):
    calls = []
    monkeypatch.setattr("httpx.Client", fake_client(Resp(data=OK_BODY), calls))
    client = OpenAICompatibleClient(GLM_CONFIG, SettingsStub())

    res = client.chat(make_request())
    assert res.text == "ok"
    assert res.usage.total_tokens == 2
    assert res.model == "okr-chat"

    init, post = calls
    assert init[1]["timeout"] == 1.0
    assert init[1]["trust_env"] is False
    _, url, payload, headers = post
    assert url == "https://glm.example/v4/chat/completions"
    assert payload["model"] == "glm-4.6"
    assert payload["messages"] == [{"role": "user", "content": "hi"}]
    assert payload["stream"] is False
    assert headers["Authorization"] == "Bearer glm-test-key"


def test_as_completion_returns_text(monkeypatch):
    calls = []
    monkeypatch.setattr("httpx.Client", fake_client(Resp(data=OK_BODY), calls))
    complete = as_completion(OpenAICompatibleClient(GLM_CONFIG, SettingsStub()), "okr-extract", temperature=0.2)
    assert complete([ChatMessage(role="user", content="hi")]) == "ok"
    assert calls[1][2]["temperature"] == 0.2
    assert calls[1][2]["max_tokens"] == 2048


def test_missing_api_key():
    client = OpenAICompatibleClient(KIMI_CONFIG, SettingsStub())
    with pytest.raises(ValidationError) as exc:
        client.chat(make_request())
    assert exc.value.code == "MISSING_API_KEY"


def test_unknown_model():
    client = OpenAICompatibleClient(GLM_CONFIG, SettingsStub())
    with pytest.raises(ValidationError) as exc:
        client.chat(make_request("ide-chat"))
    assert exc.value.code == "UNKNOWN_MODEL"


def test_rate_limit(monkeypatch):
    monkeypatch.setattr("httpx.Client", fake_client(Resp(status_code=429), []))
    with pytest.raises(RateLimitError) as exc:
        OpenAICompatibleClient(GLM_CONFIG, SettingsStub()).chat(make_request())
    assert exc.value.http_status == 429


def test_api_error(monkeypatch):
    monkeypatch.setattr("httpx.Client", fake_client(Resp(status_code=500, text="upstream down"), []))
    with pytest.raises(ApiError) as exc:
        OpenAICompatibleClient(GLM_CONFIG, SettingsStub()).chat(make_request())
    assert exc.value.http_status == 500
    assert exc.value.message == "upstream down"


def test_network_error(monkeypatch):
    monkeypatch.setattr("httpx.Client", fake_client(httpx.ConnectError("refused"), []))
    with pytest.raises(NetworkError):
        OpenAICompatibleClient(GLM_CONFIG, SettingsStub()).chat(make_request())


def test_registry_lookup():
    assert get_provider_config("GLM") is GLM_CONFIG
    with pytest.raises(KeyError):
        get_provider_config("unknown")


def test_per_call_timeout_overrides_client_default(monkeypatch):
    calls = []
    monkeypatch.setattr("httpx.Client", fake_client(Resp(data=OK_BODY), calls))
    complete = as_completion(OpenAICompatibleClient(GLM_CONFIG, SettingsStub(), timeout=60.0), "okr-chat")

    assert complete([ChatMessage(role="user", content="hi")], timeout=5.0) == "ok"
    assert complete([ChatMessage(role="user", content="hi")]) == "ok"
    inits = [c[1] for c in calls if c[0] == "init"]
    assert [kw["timeout"] for kw in inits] == [5.0, 60.0]
