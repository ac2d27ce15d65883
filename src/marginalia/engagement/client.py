"""Async HTTP client for the counts & comments service."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from marginalia.config import AppConfig
from marginalia.library.models import (
    BookTarget,
    ChapterTarget,
    Comment,
    LikeState,
    LineTarget,
    Target,
    target_params,
)

log = logging.getLogger(__name__)

READER_HEADER = "X-Reader-Id"
LIKE_ACTIONS = ("like", "unlike")


class ServiceError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _comment_type(target: Target, all_lines: bool) -> str:
    if isinstance(target, LineTarget):
        return "line"
    if isinstance(target, ChapterTarget):
        return "line" if all_lines else "chapter"
    if isinstance(target, BookTarget):
        return "book"
    raise TypeError(f"Unknown engagement target: {target!r}")


class EngagementClient:
    def __init__(
        self,
        config: AppConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def base_url(self) -> str:
        return self._config.service_url.rstrip("/")

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self._config.request_timeout,
                transport=self._transport,
            )
        return self._client

    # ── Likes ──────────────────────────────────────────

    async def get_like_status(
        self, target: Target, reader_id: Optional[str]
    ) -> LikeState:
        data = await self._request(
            "GET", "/api/likes", reader_id, params=target_params(target)
        )
        return self._like_state(data)

    async def set_like(self, target: Target, action: str, reader_id: str) -> LikeState:
        if action not in LIKE_ACTIONS:
            raise ValueError(f"Unknown like action: {action}")
        payload = {**target_params(target), "action": action}
        data = await self._request("POST", "/api/likes", reader_id, json=payload)
        return self._like_state(data)

    # ── Comments ───────────────────────────────────────

    async def list_comments(
        self, target: Target, reader_id: Optional[str], all_lines: bool = False
    ) -> list[Comment]:
        params = {**target_params(target), "type": _comment_type(target, all_lines)}
        data = await self._request("GET", "/api/comments", reader_id, params=params)
        try:
            return [Comment.from_dict(item) for item in data["items"]]
        except (KeyError, TypeError, ValueError) as e:
            log.error("Unexpected comment list format: %s", e)
            raise ServiceError("Unexpected response format") from e

    async def create_comment(
        self,
        target: Target,
        author_name: str,
        body: str,
        reader_id: str,
        parent_id: Optional[str] = None,
    ) -> Comment:
        payload: dict[str, Any] = {
            **target_params(target),
            "author_name": author_name,
            "body": body,
        }
        if parent_id is not None:
            payload["parent_id"] = parent_id
        data = await self._request("POST", "/api/comments", reader_id, json=payload)
        return self._comment(data)

    async def update_comment(self, comment_id: str, body: str, reader_id: str) -> Comment:
        data = await self._request(
            "PUT", f"/api/comments/{comment_id}", reader_id, json={"body": body}
        )
        return self._comment(data)

    async def delete_comment(self, comment_id: str, reader_id: str) -> None:
        await self._request("DELETE", f"/api/comments/{comment_id}", reader_id)

    # ── Transport ──────────────────────────────────────

    async def _request(
        self, method: str, path: str, reader_id: Optional[str], **kwargs: Any
    ) -> dict[str, Any]:
        headers: dict[str, str] = {"Accept": "application/json"}
        if reader_id:
            headers[READER_HEADER] = reader_id
        client = self._get_client()
        try:
            resp = await client.request(method, path, headers=headers, **kwargs)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            log.error(
                "Engagement API error: %s %s -> %s %s",
                method,
                path,
                e.response.status_code,
                e.response.text[:200],
            )
            raise ServiceError(
                self._detail(e.response), status_code=e.response.status_code
            ) from e
        except httpx.RequestError as e:
            log.error(
                "Engagement request error: %s %s -> %s",
                type(e).__name__,
                e.request.url,
                e,
            )
            raise ServiceError(f"Request failed: {type(e).__name__}") from e
        except ValueError as e:
            log.error("Engagement API returned invalid JSON: %s", e)
            raise ServiceError("Unexpected response format") from e

        if not isinstance(data, dict) or not data.get("ok", False):
            raise ServiceError("Unexpected response format")
        return data

    @staticmethod
    def _detail(response: httpx.Response) -> str:
        try:
            detail = response.json().get("detail")
        except (ValueError, AttributeError):
            detail = None
        if isinstance(detail, str) and detail:
            return detail
        return f"HTTP {response.status_code}"

    @staticmethod
    def _item(data: dict[str, Any]) -> dict[str, Any]:
        item = data.get("item")
        if not isinstance(item, dict):
            raise ServiceError("Unexpected response format")
        return item

    def _like_state(self, data: dict[str, Any]) -> LikeState:
        try:
            return LikeState.from_dict(self._item(data))
        except (KeyError, TypeError, ValueError) as e:
            log.error("Unexpected like status format: %s", e)
            raise ServiceError("Unexpected response format") from e

    def _comment(self, data: dict[str, Any]) -> Comment:
        try:
            return Comment.from_dict(self._item(data))
        except (KeyError, TypeError, ValueError) as e:
            log.error("Unexpected comment format: %s", e)
            raise ServiceError("Unexpected response format") from e

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
