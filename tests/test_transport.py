"""Tests for the redirect-following request executor."""

from __future__ import annotations

from unittest import mock

import pytest
import requests
import responses

from urlfetch import USER_AGENT
from urlfetch.headers import Header
from urlfetch.transport import (
    FetchedResponse,
    ProtocolError,
    RedirectingRequestExecutor,
    RequestPlan,
    TooManyRedirectsError,
    UploadError,
    UploadSource,
    build_plan,
    create_session,
    execute_with_redirects,
)

BASE = "http://example.test"


def _executor(**kwargs) -> RedirectingRequestExecutor:
    return RedirectingRequestExecutor(create_session(), **kwargs)


@pytest.mark.parametrize("status", [200, 204, 304, 308, 404, 500])
def test_non_redirect_status_returns_after_one_request(status: int) -> None:
    with responses.RequestsMock() as rs:
        rs.add(responses.GET, f"{BASE}/page", body="", status=status)

        response, elapsed_ms = _executor().execute(RequestPlan(url=f"{BASE}/page"))

        assert len(rs.calls) == 1
    assert response.status_code == status
    assert elapsed_ms >= 0


@pytest.mark.parametrize("status", [301, 302, 307])
def test_same_method_redirects_keep_method_and_body(status: int) -> None:
    plan = build_plan(
        f"{BASE}/submit",
        method="POST",
        upload=UploadSource.from_string("name=value"),
        content_type="application/x-www-form-urlencoded",
    )
    with responses.RequestsMock() as rs:
        rs.add(responses.POST, f"{BASE}/submit", status=status, headers={"Location": f"{BASE}/moved"})
        rs.add(responses.POST, f"{BASE}/moved", body="done", status=200)

        response, _ = _executor().execute(plan)

        assert [call.request.method for call in rs.calls] == ["POST", "POST"]
        retry = rs.calls[1].request
        assert retry.body == b"name=value"
        assert retry.headers["Content-Type"] == "application/x-www-form-urlencoded"
    assert response.status_code == 200
    assert response.url == f"{BASE}/moved"


@pytest.mark.parametrize("method", ["POST", "PUT"])
def test_see_other_switches_to_get_without_body(method: str) -> None:
    plan = build_plan(f"{BASE}/upload", method=method, upload=UploadSource.from_string("payload"))
    with responses.RequestsMock() as rs:
        rs.add(method, f"{BASE}/upload", status=303, headers={"Location": "/result"})
        rs.add(responses.GET, f"{BASE}/result", body="ok", status=200)

        response, _ = _executor().execute(plan)

        retry = rs.calls[1].request
        assert retry.method == "GET"
        assert not retry.body
        assert "Content-Length" not in retry.headers or retry.headers["Content-Length"] == "0"
    assert response.status_code == 200


def test_redirect_chain_follows_until_terminal_status() -> None:
    with responses.RequestsMock() as rs:
        rs.add(responses.GET, f"{BASE}/a", status=301, headers={"Location": f"{BASE}/b"})
        rs.add(responses.GET, f"{BASE}/b", status=307, headers={"Location": "c"})
        rs.add(responses.GET, f"{BASE}/c", status=302, headers={"Location": "https://other.test/d"})
        rs.add(responses.GET, "https://other.test/d", body="final", status=200)

        response, _ = _executor().execute(RequestPlan(url=f"{BASE}/a"))

        assert [call.request.url for call in rs.calls] == [
            f"{BASE}/a",
            f"{BASE}/b",
            f"{BASE}/c",
            "https://other.test/d",
        ]
    assert response.body.read() == b"final"


def test_configured_headers_and_user_agent_sent_on_every_attempt() -> None:
    plan = build_plan(
        f"{BASE}/start",
        raw_headers=["X-Trace: abc", "User-Agent: ignored/1.0", "Accept: text/html", "Accept: */*"],
    )
    with responses.RequestsMock() as rs:
        rs.add(responses.GET, f"{BASE}/start", status=302, headers={"Location": f"{BASE}/end"})
        rs.add(responses.GET, f"{BASE}/end", status=200)

        _executor().execute(plan)

        for call in rs.calls:
            assert call.request.headers["User-Agent"] == USER_AGENT
            assert call.request.headers["X-Trace"] == "abc"
            assert call.request.headers["Accept"] == "text/html, */*"


def test_literal_body_sets_byte_length() -> None:
    plan = build_plan(f"{BASE}/put", method="PUT", upload=UploadSource.from_string("héllo"))
    with responses.RequestsMock() as rs:
        rs.add(responses.PUT, f"{BASE}/put", status=201)

        _executor().execute(plan)

        sent = rs.calls[0].request
        assert sent.headers["Content-Length"] == "6"
        assert sent.body == "héllo".encode("utf-8")


def test_file_body_is_streamed_with_content_length(tmp_path) -> None:
    upload = tmp_path / "data.bin"
    payload = b"0123456789" * 1000
    upload.write_bytes(payload)
    plan = build_plan(f"{BASE}/post", method="POST", upload=UploadSource.from_file(upload))
    with responses.RequestsMock() as rs:
        rs.add(responses.POST, f"{BASE}/post", status=200)

        _executor().execute(plan)

        sent = rs.calls[0].request
        assert sent.headers["Content-Length"] == str(len(payload))
        assert "Transfer-Encoding" not in sent.headers
        chunks = list(sent.body)
    assert b"".join(chunks) == payload
    assert max(len(chunk) for chunk in chunks) <= 4096


def test_missing_upload_file_fails_before_any_request(tmp_path) -> None:
    plan = build_plan(
        f"{BASE}/post", method="POST", upload=UploadSource.from_file(tmp_path / "missing.txt")
    )
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rs:
        rs.add(responses.POST, f"{BASE}/post", status=200)

        with pytest.raises(UploadError):
            _executor().execute(plan)

        assert len(rs.calls) == 0


@pytest.mark.parametrize("url", ["ftp://example.test/file", "file:///etc/hosts", "example.test/page"])
def test_non_http_url_is_a_protocol_error(url: str) -> None:
    with pytest.raises(ProtocolError):
        _executor().execute(RequestPlan(url=url))


def test_redirect_to_non_http_location_is_a_protocol_error() -> None:
    with responses.RequestsMock() as rs:
        rs.add(responses.GET, f"{BASE}/a", status=302, headers={"Location": "ftp://example.test/b"})

        with pytest.raises(ProtocolError):
            _executor().execute(RequestPlan(url=f"{BASE}/a"))


def test_redirect_without_location_is_a_protocol_error() -> None:
    with responses.RequestsMock() as rs:
        rs.add(responses.GET, f"{BASE}/a", status=301)

        with pytest.raises(ProtocolError, match="Location"):
            _executor().execute(RequestPlan(url=f"{BASE}/a"))


def test_redirect_cap_is_enforced_when_configured() -> None:
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rs:
        rs.add(responses.GET, f"{BASE}/a", status=302, headers={"Location": f"{BASE}/b"})
        rs.add(responses.GET, f"{BASE}/b", status=302, headers={"Location": f"{BASE}/a"})

        with pytest.raises(TooManyRedirectsError):
            _executor(max_redirects=3).execute(RequestPlan(url=f"{BASE}/a"))

        assert len(rs.calls) == 4


def test_transport_errors_propagate() -> None:
    with responses.RequestsMock() as rs:
        rs.add(responses.GET, f"{BASE}/down", body=requests.exceptions.ConnectionError("refused"))

        with pytest.raises(requests.exceptions.ConnectionError):
            _executor().execute(RequestPlan(url=f"{BASE}/down"))


def test_verify_flag_and_transport_redirects_disabled() -> None:
    session = mock.Mock(spec=requests.Session)
    reply = mock.Mock()
    reply.status_code = 200
    reply.url = f"{BASE}/secure"
    reply.reason = "OK"
    reply.raw.version = 11
    reply.raw.headers = {"Content-Type": "text/plain"}
    session.request.return_value = reply

    response, _ = execute_with_redirects(
        RequestPlan(url=f"{BASE}/secure"), session=session, verify=False
    )

    kwargs = session.request.call_args.kwargs
    assert kwargs["verify"] is False
    assert kwargs["allow_redirects"] is False
    assert kwargs["stream"] is True
    assert response.status_line == "HTTP/1.1 200 OK"
    assert response.get("content-type") == "text/plain"


def test_plan_follow_builds_new_immutable_plans() -> None:
    original = RequestPlan(
        url=f"{BASE}/dir/page",
        method="put",
        headers=(Header("X-Id", "1"),),
        upload=UploadSource.from_string("body"),
    )

    kept = original.follow("other", 307)
    switched = original.follow("/elsewhere", 303)

    assert original.method == "PUT"
    assert original.url == f"{BASE}/dir/page"
    assert (kept.method, kept.url, kept.upload) == ("PUT", f"{BASE}/dir/other", original.upload)
    assert (switched.method, switched.url, switched.upload) == ("GET", f"{BASE}/elsewhere", None)
    assert switched.headers == original.headers
    with pytest.raises(ValueError):
        original.follow("/x", 308)


def test_upload_source_requires_exactly_one_origin(tmp_path) -> None:
    with pytest.raises(ValueError):
        UploadSource()
    with pytest.raises(ValueError):
        UploadSource(path=tmp_path / "a", data="b")


def test_fetched_response_header_access() -> None:
    response = FetchedResponse(
        url=f"{BASE}/",
        status_code=200,
        status_line="HTTP/1.1 200 OK",
        headers=(
            Header("Set-Cookie", "a=1"),
            Header("Content-Length", "12"),
            Header("Set-Cookie", "b=2"),
        ),
        body=None,  # type: ignore[arg-type]
    )

    assert response.header_field(0) == "HTTP/1.1 200 OK"
    assert response.header_field_key(0) is None
    assert response.header_field_key(1) == "Set-Cookie"
    assert response.header_field(2) == "12"
    assert response.header_field(4) is None
    assert response.get("set-cookie") == "b=2"
    assert response.get_all("Set-Cookie") == ["a=1", "b=2"]
    assert response.declared_length() == 12
