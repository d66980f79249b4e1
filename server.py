import json
import secrets
import time
from functools import wraps
from typing import Any, Dict

from quart import Quart, Response, request, jsonify
from werkzeug.exceptions import HTTPException

from config import SERVER, VERSION
from errors import ServiceError, ValidationError
from logging_config import get_logger
from models import ProxyResponse
from providers.lastfm import DEFAULT_SIMILAR_LIMIT, DEFAULT_TOP_LIMIT
from services import Services, get_services

logger = get_logger(__name__)

APP_START_TIME = int(time.time())
PROXY_PREFIX = '/api/mediaserver-proxy/'

app = Quart(__name__)
app.config['SERVER_NAME'] = None
# Tests (or an embedding app) may put a prebuilt Services here
app.config['SERVICES'] = None

# --- Helper Functions ---

def services() -> Services:
    return app.config.get('SERVICES') or get_services()


def require_user(func):
    """
    Opaque current-user check. When an API token is configured every request
    must carry ``Authorization: Bearer <token>``.
    """
    @wraps(func)
    async def wrapper(*args, **kwargs):
        expected = services().api_token
        if expected:
            header = request.headers.get('Authorization', '')
            scheme, _, supplied = header.partition(' ')
            if scheme.lower() != 'bearer' or not secrets.compare_digest(supplied.strip(), expected):
                return jsonify({"error": "Unauthorized"}), 401
        return await func(*args, **kwargs)
    return wrapper


def _required_args(*names: str) -> Dict[str, str]:
    values = {name: (request.args.get(name) or '').strip() for name in names}
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise ValidationError(f"Missing required parameters: {', '.join(missing)}", code="MISSING_PARAMETER")
    return values


def _proxy_response(result: ProxyResponse) -> Response:
    return Response(json.dumps(result.body), status=result.status, headers=result.headers)


def _query_params() -> Dict[str, Any]:
    # Keep repeated keys (e.g. Subsonic id=1&id=2)
    return request.args.to_dict(flat=False)

# --- Lifecycle ---

@app.before_serving
async def start_background_tasks():
    services().start_background_tasks()


@app.after_serving
async def stop_background_tasks():
    await services().stop_background_tasks()


@app.after_request
async def add_cache_headers(response):
    """API responses must never be cached by the browser; caching happens server side."""
    if request.path.startswith('/api/'):
        response.headers['Cache-Control'] = 'no-cache, no-store, must-revalidate'
        response.headers['Pragma'] = 'no-cache'
        response.headers['Expires'] = '0'
    if request.path.startswith(PROXY_PREFIX):
        # Includes 401s from require_user and error handler responses
        response.headers.setdefault('Access-Control-Allow-Origin', SERVER.get('cors_origin', '*'))
    return response

# --- Error Handlers ---

@app.errorhandler(ServiceError)
async def handle_service_error(error: ServiceError):
    return jsonify(error.to_payload()), error.http_status


@app.errorhandler(Exception)
async def handle_unexpected_error(error: Exception):
    if isinstance(error, HTTPException):
        return error
    logger.error(f"Unhandled error on {request.path}: {error}", exc_info=True)
    return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500

# --- Routes ---

@app.route("/api/health")
async def health():
    return jsonify({"status": "ok", "version": VERSION, "uptime": int(time.time()) - APP_START_TIME})


@app.route("/api/similar-tracks")
@require_user
async def similar_tracks():
    args = _required_args('artist', 'track')
    svc = services()
    tracks = await svc.lastfm.get_similar_tracks(args['artist'], args['track'],
                                                 request.args.get('limit', DEFAULT_SIMILAR_LIMIT))
    enriched = await svc.enrichment.enrich(tracks)
    return jsonify({"tracks": [track.to_dict() for track in enriched]})


@app.route("/api/top-tracks")
@require_user
async def top_tracks():
    args = _required_args('artist')
    svc = services()
    tracks = await svc.lastfm.get_top_tracks(args['artist'], request.args.get('limit', DEFAULT_TOP_LIMIT))
    enriched = await svc.enrichment.enrich(tracks)
    return jsonify({"tracks": [track.to_dict() for track in enriched]})


@app.route("/api/mediaserver-proxy/album/<album_id>")
@require_user
async def proxy_album(album_id: str):
    return _proxy_response(await services().proxy.album(album_id, _query_params()))


@app.route("/api/mediaserver-proxy/rest/<endpoint>")
@require_user
async def proxy_rest(endpoint: str):
    return _proxy_response(await services().proxy.proxy_subsonic(endpoint, _query_params()))


@app.route("/api/lyrics")
@require_user
async def get_lyrics():
    args = _required_args('artist', 'title')
    entry = await services().lyrics.get_lyrics(
        args['artist'],
        args['title'],
        album=request.args.get('album') or None,
        duration=request.args.get('duration') or None,
    )
    return jsonify(entry.to_dict())

# --- Cache Management API ---

@app.route("/api/cache/stats", methods=['GET'])
@require_user
async def cache_stats():
    return jsonify({"namespaces": await services().cache.stats()})


@app.route("/api/cache/sweep", methods=['POST'])
@require_user
async def cache_sweep():
    return jsonify({"removed": await services().cache.sweep()})


@app.route("/api/cache/<namespace>", methods=['DELETE'])
@require_user
async def cache_clear(namespace: str):
    return jsonify({"namespace": namespace, "removed": await services().cache.clear(namespace)})
