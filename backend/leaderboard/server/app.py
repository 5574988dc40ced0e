from __future__ import annotations

import contextlib
import hmac
import json
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, Field, ValidationError
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route

from leaderboard.db import SqliteEventRepository, SqliteScoreRepository, SqliteSnapshotRepository
from leaderboard.exceptions import ConfigurationError, SourceError
from leaderboard.scoring.models import TimeFilter
from leaderboard.scoring.time_filters import available_time_filters, parse_time_filter
from leaderboard.server.settings import LeaderboardSettings
from leaderboard.snapshots.store import SnapshotStore
from leaderboard.snapshots.validation import dump_scores
from shared.build_info import APP_VERSION, GIT_COMMIT
from shared.db import Database
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from starlette.requests import Request


_MAX_REQUEST_BODY_SIZE = 4096


class UpdateLeaderboardRequest(BaseModel):
    event_id: str = Field(min_length=1)
    time_filter: TimeFilter = TimeFilter.ALL_TIME


def _request_api_key(request: Request) -> str | None:
    api_key = request.headers.get("x-api-key")
    if api_key:
        return api_key
    authorization = request.headers.get("authorization", "")
    if authorization.startswith("Bearer "):
        return authorization.removeprefix("Bearer ").strip() or None
    return None


def _is_authorized(request: Request, api_keys: list[str]) -> bool:
    api_key = _request_api_key(request)
    if api_key is None:
        return False
    return any(hmac.compare_digest(api_key.encode(), key.encode()) for key in api_keys)


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok", "version": APP_VERSION, "commit": GIT_COMMIT})


async def update_leaderboard(request: Request) -> JSONResponse:
    settings: LeaderboardSettings = request.app.state.settings
    store: SnapshotStore = request.app.state.store

    if not _is_authorized(request, settings.api_keys):
        logger.warning("rejected update-leaderboard call with invalid api key")
        return JSONResponse({"error": "Unauthorized"}, status_code=401)

    try:
        raw_body = await request.body()
        if len(raw_body) > _MAX_REQUEST_BODY_SIZE:
            return JSONResponse({"error": "Request body too large"}, status_code=413)
        body = json.loads(raw_body)
        update_request = UpdateLeaderboardRequest(**body)
    except (ValueError, TypeError, json.JSONDecodeError, UnicodeDecodeError, ValidationError):  # fmt: skip
        return JSONResponse({"error": "Invalid request body"}, status_code=400)

    try:
        known = await store.has_event(update_request.event_id)
    except SourceError as e:
        logger.error("event lookup failed", event_id=update_request.event_id, error=str(e))
        return JSONResponse({"success": False, "error": str(e)}, status_code=500)
    if not known:
        return JSONResponse({"error": "Event not found"}, status_code=404)

    result = await store.refresh(update_request.event_id, update_request.time_filter)
    if not result.success:
        return JSONResponse({"success": False, "error": result.error}, status_code=500)

    return JSONResponse(
        {
            "success": True,
            "updated_at": result.updated_at.isoformat() if result.updated_at else None,
            "count": result.count,
        },
    )


async def display_config(request: Request) -> JSONResponse:
    settings: LeaderboardSettings = request.app.state.settings
    return JSONResponse(
        {
            "rotation": settings.board_runtime_config().model_dump(),
            "time_filters": [{"value": str(value), "label": label} for value, label in available_time_filters()],
        },
    )


async def get_leaderboard(request: Request) -> JSONResponse:
    store: SnapshotStore = request.app.state.store
    event_id = request.path_params["event_id"]
    try:
        time_filter = parse_time_filter(request.path_params["time_filter"], strict=True)
    except ConfigurationError:
        return JSONResponse({"error": "Unknown time filter"}, status_code=400)

    try:
        scores = await store.fetch(event_id, time_filter)
    except SourceError as e:
        logger.error("snapshot read failed", event_id=event_id, time_filter=time_filter, error=str(e))
        return JSONResponse({"error": str(e)}, status_code=500)
    if scores is None:
        return JSONResponse({"error": "Leaderboard not found"}, status_code=404)
    return JSONResponse({"event_id": event_id, "time_filter": time_filter, "scores": dump_scores(scores)})


def create_app(
    settings: LeaderboardSettings | None = None,
    store: SnapshotStore | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = LeaderboardSettings()  # ty: ignore[missing-argument]

    # When the app builds its own store, it owns the DB lifecycle.
    owned_db: Database | None = None

    if store is None:
        db = Database(settings.database_path)
        db.connect()
        owned_db = db
        store = SnapshotStore(
            SqliteScoreRepository(db),
            SqliteSnapshotRepository(db),
            SqliteEventRepository(db),
            limit=settings.snapshot_limit,
            published_only=settings.published_only,
        )

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/update-leaderboard", update_leaderboard, methods=["POST"]),
        Route("/leaderboards/{event_id}/{time_filter}", get_leaderboard, methods=["GET"]),
        Route("/display-config", display_config, methods=["GET"]),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncGenerator[None]:
        yield
        if owned_db is not None:
            owned_db.close()

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization", "X-API-Key"],
    )
    app.state.settings = settings
    app.state.store = store
    app.state.db = owned_db

    logger.info("leaderboard server ready", snapshot_limit=store.limit)
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (uvicorn --factory leaderboard.server.app:get_app)."""
    _settings = LeaderboardSettings()  # ty: ignore[missing-argument]
    setup_logging(log_dir=_settings.log_dir)
    return create_app(settings=_settings)
