"""
Navidrome read proxy for the browser client.

Mirrors the upstream status code and always answers with JSON plus a
permissive CORS header. Failures are turned into a structured body here;
nothing is raised past ``proxy``/``proxy_subsonic``.
"""

import re
from typing import Any, Dict, Optional
from urllib.parse import quote

from errors import AuthExpired, ServiceError
from logging_config import get_logger
from models import ProxyResponse
from providers.navidrome import NavidromeClient

logger = get_logger(__name__)

# Audio/image payloads are not proxied
BINARY_ENDPOINTS = {"stream", "download", "getCoverArt", "getAvatar"}

_ENDPOINT_RE = re.compile(r"^[A-Za-z0-9]+(\.view)?$")


class NavidromeProxy:
    def __init__(self, client: NavidromeClient, cors_origin: str = "*"):
        self.client = client
        self.cors_origin = cors_origin

    def _response(self, status: int, body: Any) -> ProxyResponse:
        return ProxyResponse(
            status=status,
            body=body,
            headers={
                "Content-Type": "application/json",
                "Access-Control-Allow-Origin": self.cors_origin,
            },
        )

    def _error(self, status: int, message: str, code: str) -> ProxyResponse:
        return self._response(status, {"error": message, "code": code})

    def _not_configured(self) -> ProxyResponse:
        return self._error(500, "Navidrome is not configured", "NAVIDROME_NOT_CONFIGURED")

    async def _forward(self, label: str, send) -> ProxyResponse:
        try:
            response = await send()
        except AuthExpired as e:
            logger.warning(f"Navidrome proxy {label}: {e.message}")
            return self._error(401, e.message, e.code)
        except ServiceError as e:
            logger.error(f"Navidrome proxy {label} failed: {e.message}")
            return self._error(500, e.message, e.code)
        except Exception as e:
            logger.error(f"Navidrome proxy {label} failed unexpectedly: {e}", exc_info=True)
            return self._error(500, "Navidrome proxy error", "NAVIDROME_API_ERROR")

        try:
            body = response.json()
        except ValueError as e:
            logger.error(f"Navidrome proxy {label} returned non-JSON (HTTP {response.status_code}): {e}")
            return self._error(500, "Invalid response from Navidrome", "NAVIDROME_API_ERROR")

        if not response.ok:
            logger.info(f"Navidrome proxy {label} mirrored HTTP {response.status_code}")
        return self._response(response.status_code, body)

    async def proxy(self, path: str, query_params: Optional[Dict[str, Any]] = None,
                    method: str = "GET") -> ProxyResponse:
        """Forward ``path`` on the native Navidrome API with the shared session."""
        if not self.client.base_url:
            return self._not_configured()
        return await self._forward(path, lambda: self.client.request(method, path, query_params or {}))

    async def album(self, album_id: str, query_params: Optional[Dict[str, Any]] = None) -> ProxyResponse:
        return await self.proxy(f"/api/album/{quote(album_id, safe='')}", query_params)

    async def proxy_subsonic(self, endpoint: str, query_params: Optional[Dict[str, Any]] = None) -> ProxyResponse:
        """Forward ``/rest/<endpoint>`` with Subsonic token auth. Binary endpoints are refused."""
        if not _ENDPOINT_RE.match(endpoint or ""):
            return self._error(400, f"Invalid endpoint: {endpoint}", "INVALID_ENDPOINT")
        name = endpoint[:-5] if endpoint.endswith(".view") else endpoint
        if name in BINARY_ENDPOINTS:
            return self._error(400, f"Binary endpoint '{name}' is not proxied", "UNSUPPORTED_ENDPOINT")
        if not self.client.base_url:
            return self._not_configured()
        return await self._forward(f"rest/{name}", lambda: self.client.subsonic(endpoint, query_params or {}))
