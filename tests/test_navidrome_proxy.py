"""Tests for the Navidrome read proxy"""
from unittest.mock import MagicMock

import pytest
import requests

from navidrome_proxy import NavidromeProxy
from providers.navidrome import NavidromeClient, NavidromeSession


def _proxy(http, clock, url="http://nd.local"):
    session = NavidromeSession(url, "alice", "secret", http=http, clock=clock)
    return NavidromeProxy(NavidromeClient(session))


@pytest.fixture
def http(login_response):
    http = MagicMock()
    http.post.return_value = login_response
    return http


def _assert_json_cors(result):
    assert result.headers["Content-Type"] == "application/json"
    assert result.headers["Access-Control-Allow-Origin"] == "*"


async def test_not_configured_returns_500_without_network(clock):
    http = MagicMock()
    proxy = _proxy(http, clock, url="")

    result = await proxy.album("al-1", {})

    assert result.status == 500
    assert result.body["code"] == "NAVIDROME_NOT_CONFIGURED"
    _assert_json_cors(result)
    http.post.assert_not_called()
    http.request.assert_not_called()


async def test_mirrors_upstream_status(http, clock, make_response):
    http.request.return_value = make_response(404, {"error": "data not found"})
    proxy = _proxy(http, clock)

    result = await proxy.album("missing", {"foo": ["bar"]})

    assert result.status == 404
    assert result.body == {"error": "data not found"}
    _assert_json_cors(result)
    args, kwargs = http.request.call_args
    assert args[1] == "http://nd.local/api/album/missing"
    assert kwargs["params"] == {"foo": ["bar"]}


async def test_success(http, clock, make_response):
    http.request.return_value = make_response(200, {"id": "al-1", "name": "OK Computer"})

    result = await _proxy(http, clock).album("al-1")

    assert result.status == 200
    assert result.body["name"] == "OK Computer"


async def test_second_401_mirrored_as_auth_expired(http, clock, make_response):
    http.request.return_value = make_response(401, {"error": "nope"})

    result = await _proxy(http, clock).album("al-1")

    assert result.status == 401
    assert result.body["code"] == "NAVIDROME_AUTH_EXPIRED"
    assert http.request.call_count == 2


async def test_transport_failure_becomes_structured_500(http, clock):
    http.request.side_effect = requests.ConnectionError("connection refused")

    result = await _proxy(http, clock).album("al-1")

    assert result.status == 500
    assert result.body["code"] == "NAVIDROME_API_ERROR"
    assert "error" in result.body
    _assert_json_cors(result)


async def test_non_json_body_becomes_500(http, clock, make_response):
    http.request.return_value = make_response(200, json_error=True)

    result = await _proxy(http, clock).album("al-1")

    assert result.status == 500
    assert result.body["code"] == "NAVIDROME_API_ERROR"


async def test_album_id_is_quoted(http, clock, make_response):
    http.request.return_value = make_response(200, {})

    await _proxy(http, clock).album("a/b?c")

    assert http.request.call_args.args[1] == "http://nd.local/api/album/a%2Fb%3Fc"


@pytest.mark.parametrize("endpoint", ["stream", "download", "getCoverArt", "getAvatar", "stream.view"])
async def test_subsonic_binary_endpoints_refused(http, clock, endpoint):
    result = await _proxy(http, clock).proxy_subsonic(endpoint, {"id": ["1"]})

    assert result.status == 400
    assert result.body["code"] == "UNSUPPORTED_ENDPOINT"
    http.request.assert_not_called()


async def test_subsonic_invalid_endpoint(http, clock):
    result = await _proxy(http, clock).proxy_subsonic("../auth", {})
    assert result.status == 400


async def test_subsonic_forwards_with_token_params(http, clock, make_response):
    http.request.return_value = make_response(200, {"subsonic-response": {"status": "ok"}})

    result = await _proxy(http, clock).proxy_subsonic("getAlbum", {"id": ["al-1"]})

    assert result.status == 200
    args, kwargs = http.request.call_args
    assert args[1] == "http://nd.local/rest/getAlbum"
    params = kwargs["params"]
    assert params["id"] == ["al-1"]
    assert params["u"] == "alice"
    assert params["t"] == "sub-token"
    assert params["s"] == "sub-salt"
    assert params["f"] == "json"


async def test_subsonic_keeps_caller_format(http, clock, make_response):
    http.request.return_value = make_response(200, {})

    await _proxy(http, clock).proxy_subsonic("ping", {"f": ["jsonp"]})

    assert http.request.call_args.kwargs["params"]["f"] == ["jsonp"]


async def test_subsonic_transport_failure_hides_auth_params(http, clock):
    http.request.side_effect = requests.ConnectionError(
        "Max retries exceeded with url: /rest/getAlbum?u=alice&t=sub-token&s=sub-salt&f=json")

    result = await _proxy(http, clock).proxy_subsonic("getAlbum", {"id": ["al-1"]})

    assert result.status == 500
    assert result.body["code"] == "NAVIDROME_API_ERROR"
    assert "sub-token" not in str(result.body)
    assert "sub-salt" not in str(result.body)
