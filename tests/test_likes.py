"""Tests for optimistic like toggles."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from marginalia.config import AppConfig
from marginalia.engagement.cache import EngagementCache
from marginalia.engagement.client import EngagementClient
from marginalia.engagement.likes import LikeController, TogglePhase
from marginalia.library.models import BookTarget, ChapterTarget, LikeState, LineTarget
from marginalia.service.store import EngagementStore

from conftest import READER

LINE = LineTarget("C1", 12)


def _seed_likes(store: EngagementStore, target, count: int) -> None:
    for i in range(count):
        store.set_like(target, f"reader_seed_{i}", liked=True)


def _controller(client, cache, reader_id=READER, errors=None, changes=None):
    return LikeController(
        client,
        cache,
        reader_id=lambda: reader_id,
        on_change=(lambda t, s: changes.append((t, s))) if changes is not None else None,
        on_error=errors.append if errors is not None else None,
    )


class TestLineLikes:
    @pytest.mark.asyncio
    async def test_first_click_reveals_then_toggles(
        self, client: EngagementClient, cache: EngagementCache, store: EngagementStore
    ):
        _seed_likes(store, LINE, 3)
        likes = _controller(client, cache)

        revealed = await likes.click_line("C1", 12)
        assert revealed == LikeState(3, False)
        assert store.like_status(LINE, READER) == LikeState(3, False)

        liked = await likes.click_line("C1", 12)
        assert liked == LikeState(4, True)
        assert likes.state(LINE) == LikeState(4, True)
        assert store.like_status(LINE, READER) == LikeState(4, True)

        unliked = await likes.click_line("C1", 12)
        assert unliked == LikeState(3, False)

    @pytest.mark.asyncio
    async def test_line_state_cached_durably(
        self, client: EngagementClient, db, store: EngagementStore
    ):
        _seed_likes(store, LINE, 3)
        likes = _controller(client, EngagementCache(db))
        await likes.click_line("C1", 12)
        await likes.click_line("C1", 12)

        reopened = EngagementCache(db)
        assert reopened.get("C1", 12) == LikeState(4, True)

    @pytest.mark.asyncio
    async def test_without_identity_nothing_happens(
        self, client: EngagementClient, cache: EngagementCache, store: EngagementStore
    ):
        likes = _controller(client, cache, reader_id=None)
        assert await likes.click_line("C1", 12) is None
        assert await likes.toggle(BookTarget("b1")) is None
        assert not cache.has_loaded("C1", 12)

    @pytest.mark.asyncio
    async def test_change_callback(
        self, client: EngagementClient, cache: EngagementCache
    ):
        changes: list = []
        likes = _controller(client, cache, changes=changes)
        await likes.click_line("C1", 12)
        await likes.click_line("C1", 12)
        # reveal, optimistic apply, confirmed apply
        assert [s for _, s in changes] == [
            LikeState(0, False),
            LikeState(1, True),
            LikeState(1, True),
        ]


class TestToggle:
    @pytest.mark.asyncio
    async def test_unknown_state_is_fetched_first(
        self, client: EngagementClient, cache: EngagementCache, store: EngagementStore
    ):
        chapter = ChapterTarget("C1")
        store.set_like(chapter, READER, liked=True)
        likes = _controller(client, cache)

        # Already liked on the service: the toggle must unlike, not like again.
        state = await likes.toggle(chapter)
        assert state == LikeState(0, False)
        assert likes.phase(chapter) is TogglePhase.SETTLED

    @pytest.mark.asyncio
    async def test_book_like(self, client: EngagementClient, cache: EngagementCache):
        likes = _controller(client, cache)
        book = BookTarget("b1")
        assert await likes.toggle(book) == LikeState(1, True)
        assert likes.state(book) == LikeState(1, True)

    @pytest.mark.asyncio
    async def test_load_failure_shows_zero(self, config: AppConfig, cache: EngagementCache):
        client = EngagementClient(
            config, transport=httpx.MockTransport(lambda r: httpx.Response(503))
        )
        likes = _controller(client, cache)
        assert await likes.load(BookTarget("b1")) == LikeState()
        assert likes.state(BookTarget("b1")) is None
        await client.close()

    @pytest.mark.asyncio
    async def test_read_failure_does_not_toggle(
        self, config: AppConfig, cache: EngagementCache
    ):
        posts: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                posts.append(request)
            return httpx.Response(503)

        client = EngagementClient(config, transport=httpx.MockTransport(handler))
        errors: list[str] = []
        likes = _controller(client, cache, errors=errors)
        assert await likes.toggle(ChapterTarget("C1")) is None
        assert posts == []
        assert errors == ["Could not load likes. Please try again."]
        await client.close()


class TestRollback:
    @pytest.mark.asyncio
    async def test_failed_write_restores_previous_state(
        self, config: AppConfig, cache: EngagementCache
    ):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return httpx.Response(200, json={"ok": True, "item": {"total": 3, "is_liked": False}})
            return httpx.Response(500, json={"detail": "database down"})

        client = EngagementClient(config, transport=httpx.MockTransport(handler))
        errors: list[str] = []
        changes: list = []
        likes = _controller(client, cache, errors=errors, changes=changes)

        await likes.click_line("C1", 12)
        result = await likes.click_line("C1", 12)

        assert result == LikeState(3, False)
        assert likes.state(LINE) == LikeState(3, False)
        assert [s for _, s in changes][-2:] == [LikeState(4, True), LikeState(3, False)]
        assert errors == ["Like failed. Please try again."]
        assert likes.phase(LINE) is TogglePhase.SETTLED
        await client.close()

    @pytest.mark.asyncio
    async def test_malformed_reply_rolls_back(
        self, config: AppConfig, cache: EngagementCache
    ):
        client = EngagementClient(
            config,
            transport=httpx.MockTransport(
                lambda r: httpx.Response(
                    200, json={"ok": True, "item": {"total": "n/a", "is_liked": True}}
                )
            ),
        )
        errors: list[str] = []
        likes = _controller(client, cache, errors=errors)
        book = BookTarget("b1")

        result = await likes.toggle(book, current=LikeState(2, False))

        assert result == LikeState(2, False)
        assert likes.state(book) == LikeState(2, False)
        assert likes.phase(book) is TogglePhase.SETTLED
        assert not likes.is_pending(book)
        assert errors == ["Like failed. Please try again."]
        await client.close()

    @pytest.mark.asyncio
    async def test_malformed_reveal_shows_nothing(
        self, config: AppConfig, cache: EngagementCache
    ):
        client = EngagementClient(
            config,
            transport=httpx.MockTransport(
                lambda r: httpx.Response(200, json={"ok": True, "item": {"total": {"count": 1}}})
            ),
        )
        likes = _controller(client, cache)
        assert await likes.click_line("C1", 12) == LikeState()
        assert not cache.has_loaded("C1", 12)
        await client.close()

    @pytest.mark.asyncio
    async def test_cancelled_write_rolls_back(
        self, config: AppConfig, cache: EngagementCache
    ):
        started = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            started.set()
            await asyncio.sleep(10)
            return httpx.Response(200, json={"ok": True, "item": {"total": 1, "is_liked": True}})

        client = EngagementClient(config, transport=httpx.MockTransport(handler))
        likes = _controller(client, cache)
        book = BookTarget("b1")

        task = asyncio.ensure_future(likes.toggle(book, current=LikeState(0, False)))
        await started.wait()
        assert likes.state(book) == LikeState(1, True)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert likes.state(book) == LikeState(0, False)
        assert not likes.is_pending(book)
        await client.close()


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_second_toggle_rejected_while_pending(
        self, config: AppConfig, cache: EngagementCache
    ):
        release = asyncio.Event()
        posts: list[httpx.Request] = []

        async def handler(request: httpx.Request) -> httpx.Response:
            posts.append(request)
            await release.wait()
            return httpx.Response(200, json={"ok": True, "item": {"total": 1, "is_liked": True}})

        client = EngagementClient(config, transport=httpx.MockTransport(handler))
        likes = _controller(client, cache)
        book = BookTarget("b1")

        first = asyncio.ensure_future(likes.toggle(book, current=LikeState(0, False)))
        await asyncio.sleep(0.01)
        assert likes.is_pending(book)
        assert likes.phase(book) is TogglePhase.PENDING

        second = await likes.toggle(book)
        assert second == LikeState(1, True)  # displayed optimistic state, no new request

        release.set()
        assert await first == LikeState(1, True)
        assert len(posts) == 1
        await client.close()

    @pytest.mark.asyncio
    async def test_click_during_reveal_sends_nothing(
        self, config: AppConfig, cache: EngagementCache
    ):
        release = asyncio.Event()
        calls: list[str] = []

        async def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.method)
            await release.wait()
            return httpx.Response(200, json={"ok": True, "item": {"total": 3, "is_liked": False}})

        client = EngagementClient(config, transport=httpx.MockTransport(handler))
        likes = _controller(client, cache)

        first = asyncio.ensure_future(likes.click_line("C1", 12))
        await asyncio.sleep(0.01)
        assert await likes.click_line("C1", 12) is None

        release.set()
        assert await first == LikeState(3, False)
        assert calls == ["GET"]
        await client.close()

    @pytest.mark.asyncio
    async def test_only_clicked_lines_are_fetched(
        self, config: AppConfig, cache: EngagementCache
    ):
        lines: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            lines.append(request.url.params.get("line_number"))
            return httpx.Response(200, json={"ok": True, "item": {"total": 1, "is_liked": False}})

        client = EngagementClient(config, transport=httpx.MockTransport(handler))
        likes = _controller(client, cache)

        await likes.click_line("C1", 7)
        assert lines == ["7"]
        for number in (1, 2, 3, 8, 12):
            assert likes.state(LineTarget("C1", number)) is None
        assert cache.entries("C1") == {7: LikeState(1, False)}
        assert lines == ["7"]
        await client.close()

    @pytest.mark.asyncio
    async def test_many_readers_converge(
        self, config: AppConfig, service, store: EngagementStore
    ):
        transport = httpx.ASGITransport(app=service)
        clients = [EngagementClient(config, transport=transport) for _ in range(5)]
        controllers = [
            LikeController(c, EngagementCache(None), reader_id=lambda i=i: f"reader_{i}")
            for i, c in enumerate(clients)
        ]
        await asyncio.gather(*(c.toggle(LINE, current=LikeState()) for c in controllers))
        assert store.like_status(LINE, None).total == 5
        for c in clients:
            await c.close()

    @pytest.mark.asyncio
    async def test_repeated_like_is_idempotent(
        self, client: EngagementClient, store: EngagementStore
    ):
        await client.set_like(LINE, "like", READER)
        state = await client.set_like(LINE, "like", READER)
        assert state == LikeState(1, True)
        state = await client.set_like(LINE, "unlike", READER)
        state = await client.set_like(LINE, "unlike", READER)
        assert state == LikeState(0, False)
