"""Delegate snapshot refreshes to a remote update-leaderboard endpoint."""

from __future__ import annotations

from datetime import datetime

import httpx
import structlog

from leaderboard.snapshots.store import RefreshResult

logger = structlog.get_logger()


class RemoteSnapshotRefresher:
    """SnapshotRefresher that asks another process to recompute a snapshot.

    Calls ``POST {base_url}/update-leaderboard``. Transport errors and non-2xx
    responses become failed results; nothing is raised.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    async def refresh(self, event_id: str, time_filter: str) -> RefreshResult:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                response = await client.post(
                    f"{self._base_url}/update-leaderboard",
                    json={"event_id": event_id, "time_filter": str(time_filter)},
                    headers={"x-api-key": self._api_key},
                )
            except httpx.RequestError as e:
                logger.warning("remote refresh unreachable", event_id=event_id, time_filter=time_filter, error=str(e))
                return RefreshResult.failed(f"update-leaderboard request failed: {e}")

        if not response.is_success:
            detail = _error_detail(response)
            logger.warning(
                "remote refresh rejected",
                event_id=event_id,
                time_filter=time_filter,
                status=response.status_code,
                detail=detail,
            )
            return RefreshResult.failed(f"update-leaderboard returned {response.status_code}: {detail}")

        try:
            return _success_result(response.json())
        except (TypeError, ValueError) as e:
            logger.warning(
                "remote refresh returned unreadable body",
                event_id=event_id,
                time_filter=time_filter,
                error=str(e),
            )
            return RefreshResult.failed(f"update-leaderboard returned an unreadable body: {e}")


def _success_result(body: object) -> RefreshResult:
    if not isinstance(body, dict):
        raise TypeError(f"expected a JSON object, got {type(body).__name__}")
    updated_at = body.get("updated_at")
    return RefreshResult(
        success=True,
        count=body.get("count", 0),
        updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
    )


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and "error" in body:
        return str(body["error"])
    return response.text
