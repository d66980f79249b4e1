"""
Navidrome Session and API Client
Shares one bearer token across every concurrent request and retries once when
the server rejects it.
"""

import asyncio
import time
import uuid
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

import requests

from errors import AuthExpired, NotConfigured, UpstreamUnavailable
from logging_config import get_logger

logger = get_logger(__name__)

SUBSONIC_API_VERSION = "1.16.1"
SUBSONIC_CLIENT_NAME = "trackmeta"


class NavidromeSession:
    """
    Holds the Navidrome auth token for the lifetime of the process.

    At most one login is in flight at any time: the first caller that finds
    the token missing (or about to expire) starts a login task, everybody
    else awaits that same task. The task is shielded, so a caller that goes
    away never cancels the login for the others.
    """

    def __init__(self, base_url: str, username: str, password: str,
                 timeout: float = 5.0, token_ttl: int = 3600, refresh_threshold: int = 300,
                 http: Optional[requests.Session] = None,
                 clock: Callable[[], float] = time.time):
        self.base_url = (base_url or "").rstrip("/")
        self.username = username or ""
        self._password = password or ""
        self.timeout = timeout
        self.token_ttl = token_ttl
        self.refresh_threshold = refresh_threshold
        self.http = http or requests.Session()
        self._clock = clock

        # Sent as x-nd-client-unique-id, stable for this session object
        self.client_id = uuid.uuid4().hex

        self.token: Optional[str] = None
        self.expires_at: Optional[float] = None
        self.user_id: Optional[str] = None
        self.subsonic_token: Optional[str] = None
        self.subsonic_salt: Optional[str] = None
        self.login_count = 0

        self._lock = asyncio.Lock()
        self._inflight: Optional[asyncio.Future] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url and self.username and self._password)

    def _token_is_fresh(self) -> bool:
        if not self.token or self.expires_at is None:
            return False
        return self._clock() < self.expires_at - self.refresh_threshold

    def _clear(self) -> None:
        self.token = None
        self.expires_at = None
        self.user_id = None
        self.subsonic_token = None
        self.subsonic_salt = None

    async def get_token(self) -> str:
        """Return a valid token, logging in (once) if needed."""
        if not self.is_configured:
            raise NotConfigured("Navidrome credentials incomplete", code="NAVIDROME_NOT_CONFIGURED")

        async with self._lock:
            if self._token_is_fresh():
                return self.token
            if self._inflight is None or self._inflight.done():
                self._inflight = asyncio.ensure_future(self._login())
                self._inflight.add_done_callback(self._login_finished)
            task = self._inflight

        return await asyncio.shield(task)

    def _login_finished(self, task: asyncio.Future) -> None:
        if self._inflight is task:
            self._inflight = None
        # Mark the exception as retrieved; waiters get it through the shield
        if not task.cancelled():
            task.exception()

    def invalidate(self, token: Optional[str]) -> None:
        """Forget ``token`` if it is still the current one. A newer token is kept."""
        if token is not None and token == self.token:
            logger.info("Navidrome token rejected, clearing session")
            self._clear()

    async def _login(self) -> str:
        self.login_count += 1
        url = f"{self.base_url}/auth/login"
        logger.debug(f"Logging in to Navidrome as {self.username}")
        try:
            response = await asyncio.to_thread(
                self.http.post,
                url,
                json={"username": self.username, "password": self._password},
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            self._clear()
            logger.error(f"Navidrome login timed out: {e}")
            raise UpstreamUnavailable("Login request timed out", code="NAVIDROME_TIMEOUT")
        except requests.RequestException as e:
            self._clear()
            logger.error(f"Navidrome login failed: {e}", exc_info=True)
            raise UpstreamUnavailable("Navidrome login request failed", code="NAVIDROME_API_ERROR")

        if response.status_code in (401, 403):
            self._clear()
            raise AuthExpired(f"Login failed: HTTP {response.status_code}", code="NAVIDROME_AUTH_ERROR")
        if not response.ok:
            self._clear()
            raise UpstreamUnavailable(f"Login failed: HTTP {response.status_code}", code="NAVIDROME_API_ERROR")

        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict) or not data.get("token"):
            self._clear()
            raise UpstreamUnavailable("No token received from login", code="NAVIDROME_API_ERROR")

        self.token = data["token"]
        self.user_id = data.get("id")
        self.subsonic_token = data.get("subsonicToken")
        self.subsonic_salt = data.get("subsonicSalt")
        self.expires_at = self._clock() + self.token_ttl
        logger.info(f"Navidrome login succeeded (user: {self.username})")
        return self.token


class NavidromeClient:
    """Authenticated requests against the Navidrome native API and its Subsonic API."""

    # Two attempts: the original request plus one retry after a 401
    MAX_ATTEMPTS = 2

    def __init__(self, session: NavidromeSession):
        self.session = session

    @property
    def is_configured(self) -> bool:
        return self.session.is_configured

    @property
    def base_url(self) -> str:
        return self.session.base_url

    async def _send(self, method: str, path: str, params: Optional[Dict[str, Any]],
                    headers: Optional[Dict[str, str]] = None) -> requests.Response:
        url = f"{self.session.base_url}{path}"
        try:
            return await asyncio.to_thread(
                self.session.http.request,
                method,
                url,
                params=params,
                headers=headers,
                timeout=self.session.timeout,
            )
        except requests.Timeout as e:
            logger.error(f"Navidrome {method} {path} timed out: {e}")
            raise UpstreamUnavailable(f"API request timed out ({self.session.timeout}s limit)", code="NAVIDROME_TIMEOUT")
        except requests.RequestException as e:
            logger.error(f"Navidrome {method} {path} failed: {e}", exc_info=True)
            raise UpstreamUnavailable("Navidrome request failed", code="NAVIDROME_API_ERROR")

    async def request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        """
        Send an authenticated request and return the raw response.

        A 401 invalidates the token and retries once with a fresh login;
        a second 401 in a row raises AuthExpired.
        """
        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            token = await self.session.get_token()
            headers = {
                "x-nd-authorization": f"Bearer {token}",
                "x-nd-client-unique-id": self.session.client_id,
            }
            response = await self._send(method, path, params, headers)
            if response.status_code != 401:
                return response
            logger.warning(f"Navidrome returned 401 for {path} (attempt {attempt}/{self.MAX_ATTEMPTS})")
            self.session.invalidate(token)

        raise AuthExpired("Navidrome rejected a freshly issued token", code="NAVIDROME_AUTH_EXPIRED")

    async def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = await self.request("GET", path, params)
        if not response.ok:
            raise UpstreamUnavailable(f"API request failed: {response.status_code}", code="NAVIDROME_API_ERROR")
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Invalid JSON from Navidrome {path}: {e}")
            raise UpstreamUnavailable("Invalid JSON from Navidrome", code="NAVIDROME_API_ERROR")

    async def search_songs(self, query: str, limit: int = 50) -> List[Dict[str, Any]]:
        """Search songs by title, falling back to full-text search."""
        for param in ("title", "fullText"):
            params = {param: query, "_start": 0, "_end": limit}
            data = await self.get_json("/api/song", params)
            if isinstance(data, list) and data:
                logger.debug(f"Navidrome search with {param} returned {len(data)} songs")
                return data
        return []

    async def iter_library_songs(self, page_size: int = 500, max_songs: int = 5000) -> AsyncIterator[Dict[str, Any]]:
        """Yield every song in the library, page by page, up to ``max_songs``."""
        start = 0
        while start < max_songs:
            end = min(start + page_size, max_songs)
            page = await self.get_json("/api/song", {"_start": start, "_end": end, "_sort": "title", "_order": "ASC"})
            if not isinstance(page, list) or not page:
                return
            for song in page:
                yield song
            if len(page) < end - start:
                return
            start = end

    # ------------------------------------------------------------------
    # Subsonic API
    # ------------------------------------------------------------------

    async def subsonic_params(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        await self.session.get_token()
        if not self.session.subsonic_token or not self.session.subsonic_salt:
            raise UpstreamUnavailable("Navidrome login returned no Subsonic credentials",
                                      code="NAVIDROME_AUTH_ERROR", retryable=False)
        merged = dict(params or {})
        merged.update({
            "u": self.session.username,
            "t": self.session.subsonic_token,
            "s": self.session.subsonic_salt,
            "v": SUBSONIC_API_VERSION,
            "c": SUBSONIC_CLIENT_NAME,
        })
        merged.setdefault("f", "json")
        return merged

    async def subsonic(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        return await self._send("GET", f"/rest/{endpoint}", await self.subsonic_params(params))

    async def get_song_lyrics(self, song_id: str) -> List[Dict[str, Any]]:
        """Return the structured lyrics list Navidrome has embedded for ``song_id``."""
        response = await self.subsonic("getLyricsBySongId", {"id": song_id})
        if not response.ok:
            raise UpstreamUnavailable(f"getLyricsBySongId failed: {response.status_code}", code="NAVIDROME_API_ERROR")
        try:
            body = response.json().get("subsonic-response", {})
        except (ValueError, AttributeError) as e:
            logger.error(f"Invalid JSON from getLyricsBySongId: {e}")
            raise UpstreamUnavailable("Invalid JSON from Navidrome", code="NAVIDROME_API_ERROR")
        if body.get("status") != "ok":
            error = body.get("error") or {}
            raise UpstreamUnavailable(f"Subsonic error: {error.get('message', 'unknown')}", code="NAVIDROME_API_ERROR")
        return (body.get("lyricsList") or {}).get("structuredLyrics") or []
