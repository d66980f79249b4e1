"""Tests for authenticated Navidrome requests and the 401 retry policy"""
from unittest.mock import MagicMock

import pytest
import requests

from errors import AuthExpired, UpstreamUnavailable
from providers.navidrome import NavidromeClient, NavidromeSession


@pytest.fixture
def http(login_response):
    http = MagicMock()
    http.post.return_value = login_response
    return http


@pytest.fixture
def client(http, clock):
    return NavidromeClient(NavidromeSession("http://nd.local", "alice", "secret", http=http, clock=clock))


async def test_request_sends_auth_headers(client, http, make_response):
    http.request.return_value = make_response(200, {"id": "al-1"})

    response = await client.request("GET", "/api/album/al-1", {"x": "1"})

    assert response.status_code == 200
    args, kwargs = http.request.call_args
    assert args == ("GET", "http://nd.local/api/album/al-1")
    assert kwargs["params"] == {"x": "1"}
    assert kwargs["headers"]["x-nd-authorization"] == "Bearer tok-1"
    assert kwargs["headers"]["x-nd-client-unique-id"] == client.session.client_id


async def test_401_relogs_in_and_retries_once(client, http, make_response):
    http.post.side_effect = [
        make_response(200, {"token": "tok-1"}),
        make_response(200, {"token": "tok-2"}),
    ]
    http.request.side_effect = [
        make_response(401, {"error": "expired"}),
        make_response(200, {"ok": True}),
    ]

    response = await client.request("GET", "/api/song")

    assert response.status_code == 200
    assert http.post.call_count == 2
    assert http.request.call_count == 2
    assert http.request.call_args.kwargs["headers"]["x-nd-authorization"] == "Bearer tok-2"


async def test_second_401_is_fatal(client, http, make_response):
    http.request.return_value = make_response(401, {"error": "nope"})

    with pytest.raises(AuthExpired) as exc:
        await client.request("GET", "/api/song")

    assert exc.value.code == "NAVIDROME_AUTH_EXPIRED"
    # original attempt + exactly one retry, never a third
    assert http.request.call_count == 2
    assert http.post.call_count == 2


async def test_transport_errors(client, http):
    http.request.side_effect = requests.Timeout("slow")
    with pytest.raises(UpstreamUnavailable) as exc:
        await client.request("GET", "/api/song")
    assert exc.value.code == "NAVIDROME_TIMEOUT"

    http.request.side_effect = requests.ConnectionError("down")
    with pytest.raises(UpstreamUnavailable) as exc:
        await client.request("GET", "/api/song")
    assert exc.value.code == "NAVIDROME_API_ERROR"


async def test_get_json_rejects_non_2xx(client, http, make_response):
    http.request.return_value = make_response(500, {"error": "boom"})
    with pytest.raises(UpstreamUnavailable):
        await client.get_json("/api/song")


async def test_search_falls_back_to_full_text(client, http, make_response):
    http.request.side_effect = [
        make_response(200, []),
        make_response(200, [{"id": "s1", "title": "Karma Police"}]),
    ]

    songs = await client.search_songs("karma", limit=5)

    assert songs == [{"id": "s1", "title": "Karma Police"}]
    first, second = http.request.call_args_list
    assert first.kwargs["params"]["title"] == "karma"
    assert second.kwargs["params"]["fullText"] == "karma"


async def test_iter_library_songs_pages_until_short_page(client, http, make_response):
    http.request.side_effect = [
        make_response(200, [{"id": "1"}, {"id": "2"}]),
        make_response(200, [{"id": "3"}, {"id": "4"}]),
        make_response(200, [{"id": "5"}]),
    ]

    songs = [song async for song in client.iter_library_songs(page_size=2, max_songs=100)]

    assert [s["id"] for s in songs] == ["1", "2", "3", "4", "5"]
    starts = [call.kwargs["params"]["_start"] for call in http.request.call_args_list]
    assert starts == [0, 2, 4]


async def test_iter_library_songs_respects_max(client, http, make_response):
    http.request.side_effect = [
        make_response(200, [{"id": "1"}, {"id": "2"}]),
        make_response(200, [{"id": "3"}]),
    ]

    songs = [song async for song in client.iter_library_songs(page_size=2, max_songs=3)]

    assert len(songs) == 3
    last = http.request.call_args_list[-1].kwargs["params"]
    assert (last["_start"], last["_end"]) == (2, 3)


async def test_subsonic_params(client):
    params = await client.subsonic_params({"id": "al-1"})

    assert params["u"] == "alice"
    assert params["t"] == "sub-token"
    assert params["s"] == "sub-salt"
    assert params["f"] == "json"
    assert params["id"] == "al-1"


async def test_get_song_lyrics(client, http, make_response):
    http.request.return_value = make_response(200, {"subsonic-response": {
        "status": "ok",
        "lyricsList": {"structuredLyrics": [{"synced": True, "line": [{"start": 0, "value": "Hi"}]}]},
    }})

    lyrics = await client.get_song_lyrics("s1")

    assert lyrics[0]["synced"] is True
    args, kwargs = http.request.call_args
    assert args[1] == "http://nd.local/rest/getLyricsBySongId"
    assert kwargs["params"]["id"] == "s1"


async def test_transport_error_message_is_fixed(client, http):
    http.request.side_effect = requests.ConnectionError("HTTPConnectionPool(host='nd.local'): /api/song?_token=abc")

    with pytest.raises(UpstreamUnavailable) as exc:
        await client.request("GET", "/api/song")

    assert exc.value.message == "Navidrome request failed"
