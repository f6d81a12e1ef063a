import logging

import httpx
import pytest

from ymlp.errors import ApiError, InvalidArgument, MalformedResponse, TransportError
from ymlp.models import Credentials
from ymlp.transport import YmlpTransport


class Recorder:
    """MockTransport handler returning a fixed response and keeping every request."""

    def __init__(self, response):
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


def _transport(recorder, **kwargs) -> YmlpTransport:
    http_client = httpx.Client(transport=httpx.MockTransport(recorder))
    creds = Credentials(username="jane", api_key="s3cret")
    return YmlpTransport(creds, http_client=http_client, **kwargs)


def _sent_params(request: httpx.Request) -> dict:
    if request.method == "POST":
        return dict(httpx.QueryParams(request.content.decode()))
    return dict(request.url.params)


@pytest.mark.parametrize("method", ["GET", "POST"])
def test_injected_credentials_override_caller_values(method):
    rec = Recorder(httpx.Response(200, json={"Code": 0, "Output": "ok"}))
    transport = _transport(rec)

    transport.call(
        "Contacts.GetContact",
        {"Key": "forged", "Username": "mallory", "Output": "XML", "Email": "a@b.c"},
        method,
    )

    params = _sent_params(rec.requests[0])
    assert params["Key"] == "s3cret"
    assert params["Username"] == "jane"
    assert params["Output"] == "JSON"
    assert params["Email"] == "a@b.c"


@pytest.mark.parametrize("method", ["PUT", "DELETE", "get", ""])
def test_invalid_method_fails_before_network(method):
    rec = Recorder(httpx.Response(200, json={"Code": 0, "Output": "ok"}))
    transport = _transport(rec)

    with pytest.raises(InvalidArgument):
        transport.call("Ping", {}, method)
    assert rec.requests == []


def test_empty_path_is_rejected():
    rec = Recorder(httpx.Response(200, json={"Code": 0, "Output": "ok"}))
    with pytest.raises(InvalidArgument):
        _transport(rec).call("  ")
    assert rec.requests == []


def test_non_json_body_is_malformed():
    rec = Recorder(httpx.Response(200, text="<html>Maintenance</html>"))
    with pytest.raises(MalformedResponse) as excinfo:
        _transport(rec).call("Ping")
    assert excinfo.value.status_code == 200


def test_non_json_body_returned_verbatim_when_unstructured():
    rec = Recorder(httpx.Response(200, text="<html>Maintenance</html>"))
    assert _transport(rec).call("Ping", expect_structured_response=False) == "<html>Maintenance</html>"


@pytest.mark.parametrize("body", ["[1, 2, 3]", '"Hello!"', "", '{"Code": "abc", "Output": "x"}'])
def test_non_envelope_json_is_malformed(body):
    rec = Recorder(httpx.Response(200, text=body))
    with pytest.raises(MalformedResponse):
        _transport(rec).call("Ping")


def test_non_zero_code_raises_api_error():
    rec = Recorder(httpx.Response(200, json={"Code": 5, "Output": "duplicate"}))
    with pytest.raises(ApiError) as excinfo:
        _transport(rec).call("Contacts.Add", {"Email": "a@b.c"}, "POST")
    assert excinfo.value.code == 5
    assert excinfo.value.message == "duplicate"


def test_api_error_message_is_coerced_to_string():
    rec = Recorder(httpx.Response(200, json={"Code": 2, "Output": None}))
    with pytest.raises(ApiError) as excinfo:
        _transport(rec).call("Ping")
    assert excinfo.value.message == ""


def test_success_returns_output():
    rec = Recorder(httpx.Response(200, json={"Code": 0, "Output": "Hello!"}))
    assert _transport(rec).call("Ping") == "Hello!"


def test_missing_code_counts_as_success():
    rec = Recorder(httpx.Response(200, json={"Output": [{"ID": "1", "GroupName": "News"}]}))
    assert _transport(rec).call("Groups.GetList") == [{"ID": "1", "GroupName": "News"}]


def test_http_status_does_not_decide_success():
    rec = Recorder(httpx.Response(500, json={"Code": 0, "Output": "Hello!"}))
    assert _transport(rec).call("Ping") == "Hello!"


def test_get_appends_query_with_question_mark():
    rec = Recorder(httpx.Response(200, json={"Code": 0, "Output": "ok"}))
    _transport(rec).call("Contacts.GetList", {"GroupID": "1"})

    url = rec.requests[0].url
    assert url.scheme == "https"
    assert url.host == "www.ymlp.com"
    assert url.path == "/api/Contacts.GetList"
    assert url.params["GroupID"] == "1"


def test_get_joins_existing_query_with_ampersand():
    rec = Recorder(httpx.Response(200, json={"Code": 0, "Output": "ok"}))
    _transport(rec).call("Contacts.GetList?Page=2", {"GroupID": "1"})

    url = rec.requests[0].url
    assert url.path == "/api/Contacts.GetList"
    assert url.query.startswith(b"Page=2&")
    assert b"?" not in url.query
    assert url.params["Page"] == "2"
    assert url.params["GroupID"] == "1"


def test_post_sends_form_body_and_keeps_path():
    rec = Recorder(httpx.Response(200, json={"Code": 0, "Output": "ok"}))
    _transport(rec).call("Groups.Add", {"GroupName": "News"}, "POST")

    request = rec.requests[0]
    assert request.method == "POST"
    assert request.url.path == "/api/Groups.Add"
    assert request.url.query == b""
    assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
    assert _sent_params(request)["GroupName"] == "News"


def test_list_values_are_comma_joined_and_none_dropped():
    rec = Recorder(httpx.Response(200, json={"Code": 0, "Output": "ok"}))
    _transport(rec).call("Contacts.GetList", {"GroupID": [1, 2, 3], "Page": None})

    params = _sent_params(rec.requests[0])
    assert params["GroupID"] == "1,2,3"
    assert "Page" not in params


def test_repeated_calls_send_identical_parameters():
    rec = Recorder(httpx.Response(200, json={"Code": 0, "Output": "ok"}))
    transport = _transport(rec)
    caller_params = {"Email": "a@b.c", "GroupID": [1, 2]}

    first = transport.call("Contacts.Delete", caller_params, "POST")
    second = transport.call("Contacts.Delete", caller_params, "POST")

    assert first == second == "ok"
    assert _sent_params(rec.requests[0]) == _sent_params(rec.requests[1])
    # caller's mapping is left untouched
    assert caller_params == {"Email": "a@b.c", "GroupID": [1, 2]}


def test_connect_error_becomes_transport_error():
    exc = httpx.ConnectError("Connection refused")
    exc.__cause__ = ConnectionRefusedError(111, "Connection refused")
    rec = Recorder(exc)

    with pytest.raises(TransportError) as excinfo:
        _transport(rec).call("Ping")
    assert "Connection refused" in excinfo.value.message
    assert excinfo.value.code == 111
    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)


def test_timeout_becomes_transport_error():
    rec = Recorder(httpx.ReadTimeout("timed out"))
    with pytest.raises(TransportError):
        _transport(rec).call("Ping")
    assert len(rec.requests) == 1  # no retry


def test_user_agent_header():
    rec = Recorder(httpx.Response(200, json={"Code": 0, "Output": "ok"}))
    transport = _transport(rec)

    transport.call("Ping")
    transport.set_user_agent("MyApp/2.0")
    transport.call("Ping")

    assert rec.requests[0].headers["User-Agent"] == "Python YMLP/1.0.0"
    assert rec.requests[1].headers["User-Agent"] == "Python YMLP/1.0.0 MyApp/2.0"


def test_timeout_applies_to_subsequent_calls():
    rec = Recorder(httpx.Response(200, json={"Code": 0, "Output": "ok"}))
    transport = _transport(rec)
    assert transport.timeout == 60

    transport.call("Ping")
    transport.set_timeout(5)
    transport.call("Ping")

    assert rec.requests[0].extensions["timeout"]["read"] == 60
    assert rec.requests[1].extensions["timeout"]["read"] == 5


@pytest.mark.parametrize("seconds", [0, -1, 2.5, True, "10"])
def test_invalid_timeout_rejected(seconds):
    rec = Recorder(httpx.Response(200, json={"Code": 0, "Output": "ok"}))
    with pytest.raises(InvalidArgument):
        _transport(rec).set_timeout(seconds)


@pytest.mark.parametrize("agent", ["Café/1.0", "Shop/1.0\r\nX-Injected: 1", "Tab\tApp"])
def test_user_agent_must_be_printable_ascii(agent):
    rec = Recorder(httpx.Response(200, json={"Code": 0, "Output": "ok"}))
    transport = _transport(rec)

    with pytest.raises(InvalidArgument):
        transport.set_user_agent(agent)
    with pytest.raises(InvalidArgument):
        _transport(rec, user_agent=agent)
    assert rec.requests == []


def test_insecure_flag_rejected_with_injected_client():
    rec = Recorder(httpx.Response(200, json={"Code": 0, "Output": "ok"}))
    with pytest.raises(InvalidArgument):
        _transport(rec, insecure_skip_verify=True)
    with pytest.raises(InvalidArgument):
        _transport(rec, insecure_skip_verify=False)


@pytest.fixture
def owned_clients(monkeypatch):
    """Replace httpx.Client so transports that open their own client hit a MockTransport."""
    real_client = httpx.Client
    created: list[dict] = []
    handler = {"fn": lambda request: httpx.Response(200, json={"Code": 0, "Output": "Hello!"})}

    def factory(**kwargs):
        created.append(kwargs)
        return real_client(transport=httpx.MockTransport(lambda r: handler["fn"](r)))

    monkeypatch.setattr("ymlp.transport.httpx.Client", factory)
    return created, handler


def _own_transport(**kwargs) -> YmlpTransport:
    return YmlpTransport(Credentials(username="jane", api_key="s3cret"), **kwargs)


def test_certificates_verified_by_default(owned_clients):
    created, _ = owned_clients
    assert _own_transport().call("Ping") == "Hello!"
    assert created == [{"verify": True}]


def test_insecure_skip_verify_disables_verification(owned_clients):
    created, _ = owned_clients
    _own_transport(insecure_skip_verify=True).call("Ping")
    assert created == [{"verify": False}]


def test_each_call_opens_its_own_client(owned_clients):
    created, _ = owned_clients
    transport = _own_transport()
    transport.call("Ping")
    transport.call("Ping")
    assert len(created) == 2


def _redirecting(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/api/Ping":
        return httpx.Response(302, headers={"Location": "https://www.ymlp.com/api/Pong"})
    return httpx.Response(200, json={"Code": 0, "Output": "Hello!"})


def test_redirects_followed_by_default(owned_clients):
    _, handler = owned_clients
    handler["fn"] = _redirecting
    assert _own_transport().call("Ping") == "Hello!"


def test_redirects_not_followed_when_disabled(owned_clients):
    _, handler = owned_clients
    handler["fn"] = _redirecting
    with pytest.raises(MalformedResponse) as excinfo:
        _own_transport(follow_redirects=False).call("Ping")
    assert excinfo.value.status_code == 302


def test_debug_log_never_contains_api_key(caplog):
    rec = Recorder(httpx.Response(200, json={"Code": 0, "Output": "ok"}))
    with caplog.at_level(logging.DEBUG, logger="ymlp.transport"):
        _transport(rec).call("Contacts.GetContact", {"Email": "a@b.c"})

    assert "Contacts.GetContact" in caplog.text
    assert "s3cret" not in caplog.text
