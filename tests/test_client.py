"""Tests for the engagement HTTP client."""

from __future__ import annotations

import json

import httpx
import pytest

from marginalia.config import AppConfig
from marginalia.engagement.client import READER_HEADER, EngagementClient, ServiceError
from marginalia.library.models import BookTarget, ChapterTarget, LikeState, LineTarget

from conftest import READER


def _client(config: AppConfig, handler) -> EngagementClient:
    return EngagementClient(config, transport=httpx.MockTransport(handler))


class TestRequests:
    @pytest.mark.asyncio
    async def test_like_status_query(self, config: AppConfig):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True, "item": {"total": 3, "is_liked": False}})

        client = _client(config, handler)
        state = await client.get_like_status(LineTarget("C1", 12), READER)
        await client.close()

        assert state == LikeState(3, False)
        assert seen[0].url.path == "/api/likes"
        assert seen[0].url.params["chapter_id"] == "C1"
        assert seen[0].url.params["line_number"] == "12"
        assert seen[0].headers[READER_HEADER] == READER

    @pytest.mark.asyncio
    async def test_anonymous_status_has_no_reader_header(self, config: AppConfig):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True, "item": {"total": 0}})

        client = _client(config, handler)
        await client.get_like_status(BookTarget("b1"), None)
        await client.close()
        assert READER_HEADER not in seen[0].headers

    @pytest.mark.asyncio
    async def test_set_like_body(self, config: AppConfig):
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"ok": True, "item": {"total": 1, "is_liked": True}})

        client = _client(config, handler)
        state = await client.set_like(ChapterTarget("C1"), "like", READER)
        await client.close()
        assert state == LikeState(1, True)
        assert bodies == [{"chapter_id": "C1", "action": "like"}]

    @pytest.mark.asyncio
    async def test_set_like_rejects_unknown_action(self, config: AppConfig):
        client = _client(config, lambda r: httpx.Response(200, json={"ok": True}))
        with pytest.raises(ValueError):
            await client.set_like(BookTarget("b1"), "love", READER)
        await client.close()

    @pytest.mark.asyncio
    async def test_list_comments_type_param(self, config: AppConfig):
        types: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            types.append(request.url.params["type"])
            return httpx.Response(200, json={"ok": True, "items": []})

        client = _client(config, handler)
        await client.list_comments(LineTarget("C1", 2), READER)
        await client.list_comments(ChapterTarget("C1"), READER)
        await client.list_comments(ChapterTarget("C1"), READER, all_lines=True)
        await client.list_comments(BookTarget("b1"), READER)
        await client.close()
        assert types == ["line", "chapter", "line", "book"]


class TestErrors:
    @pytest.mark.asyncio
    async def test_http_error_carries_detail(self, config: AppConfig):
        client = _client(
            config, lambda r: httpx.Response(403, json={"detail": "only the author can delete"})
        )
        with pytest.raises(ServiceError) as exc:
            await client.delete_comment("1", READER)
        await client.close()
        assert exc.value.status_code == 403
        assert "only the author" in str(exc.value)

    @pytest.mark.asyncio
    async def test_server_error_without_json(self, config: AppConfig):
        client = _client(config, lambda r: httpx.Response(500, text="boom"))
        with pytest.raises(ServiceError) as exc:
            await client.get_like_status(BookTarget("b1"), READER)
        await client.close()
        assert exc.value.status_code == 500
        assert str(exc.value) == "HTTP 500"

    @pytest.mark.asyncio
    async def test_timeout_is_service_error(self, config: AppConfig):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = _client(config, handler)
        with pytest.raises(ServiceError) as exc:
            await client.get_like_status(BookTarget("b1"), READER)
        await client.close()
        assert exc.value.status_code is None

    @pytest.mark.asyncio
    async def test_connect_error_is_service_error(self, config: AppConfig):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = _client(config, handler)
        with pytest.raises(ServiceError):
            await client.list_comments(ChapterTarget("C1"), READER)
        await client.close()

    @pytest.mark.asyncio
    async def test_invalid_json(self, config: AppConfig):
        client = _client(config, lambda r: httpx.Response(200, text="not json"))
        with pytest.raises(ServiceError):
            await client.get_like_status(BookTarget("b1"), READER)
        await client.close()

    @pytest.mark.asyncio
    async def test_not_ok_envelope(self, config: AppConfig):
        client = _client(config, lambda r: httpx.Response(200, json={"ok": False}))
        with pytest.raises(ServiceError):
            await client.get_like_status(BookTarget("b1"), READER)
        await client.close()

    @pytest.mark.asyncio
    async def test_malformed_comment_list(self, config: AppConfig):
        client = _client(
            config, lambda r: httpx.Response(200, json={"ok": True, "items": [{"body": "x"}]})
        )
        with pytest.raises(ServiceError):
            await client.list_comments(ChapterTarget("C1"), READER)
        await client.close()

    @pytest.mark.asyncio
    async def test_malformed_like_status(self, config: AppConfig):
        client = _client(
            config,
            lambda r: httpx.Response(
                200, json={"ok": True, "item": {"total": "n/a", "is_liked": True}}
            ),
        )
        with pytest.raises(ServiceError, match="Unexpected response format"):
            await client.get_like_status(BookTarget("b1"), READER)
        with pytest.raises(ServiceError, match="Unexpected response format"):
            await client.set_like(BookTarget("b1"), "like", READER)
        await client.close()

    @pytest.mark.asyncio
    async def test_like_reply_without_item(self, config: AppConfig):
        client = _client(config, lambda r: httpx.Response(200, json={"ok": True, "item": None}))
        with pytest.raises(ServiceError):
            await client.set_like(BookTarget("b1"), "like", READER)
        await client.close()


class TestAgainstService:
    @pytest.mark.asyncio
    async def test_comment_lifecycle(self, client: EngagementClient):
        target = LineTarget("C1", 12)
        created = await client.create_comment(target, "Ayşe", "Güzel bölüm", READER)
        assert created.target == target
        listed = await client.list_comments(target, READER)
        assert [c.id for c in listed] == [created.id]

        updated = await client.update_comment(created.id, "Çok güzel bölüm", READER)
        assert updated.body == "Çok güzel bölüm"

        await client.delete_comment(created.id, READER)
        assert await client.list_comments(target, READER) == []
