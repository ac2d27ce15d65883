"""Optimistic like toggles for books, chapters and individual lines."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from marginalia.engagement.cache import EngagementCache
from marginalia.engagement.client import EngagementClient, ServiceError
from marginalia.library.models import LikeState, LineTarget, Target

log = logging.getLogger(__name__)


class TogglePhase(Enum):
    IDLE = "idle"
    PENDING = "pending"
    SETTLED = "settled"


@dataclass
class _ToggleSlot:
    phase: TogglePhase = TogglePhase.IDLE
    previous: Optional[LikeState] = None  # set only while PENDING


class LikeController:
    """Per-target like state with optimistic updates and rollback.

    Line states live in the injected ``EngagementCache``; book and chapter
    states are kept on the controller. Each target runs at most one fetch or
    toggle at a time: a second attempt while one is in flight is rejected and
    returns the currently displayed state.
    """

    def __init__(
        self,
        client: EngagementClient,
        cache: EngagementCache,
        reader_id: Callable[[], Optional[str]],
        on_change: Optional[Callable[[Target, LikeState], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._client = client
        self._cache = cache
        self._reader_id = reader_id
        self._on_change = on_change
        self._on_error = on_error
        self._states: dict[Target, LikeState] = {}
        self._slots: dict[Target, _ToggleSlot] = {}
        self._busy: set[Target] = set()

    def state(self, target: Target) -> Optional[LikeState]:
        if isinstance(target, LineTarget):
            return self._cache.get(target.chapter_id, target.line_number)
        return self._states.get(target)

    def phase(self, target: Target) -> TogglePhase:
        slot = self._slots.get(target)
        return slot.phase if slot else TogglePhase.IDLE

    def is_pending(self, target: Target) -> bool:
        return target in self._busy

    def _apply(self, target: Target, state: LikeState) -> None:
        if isinstance(target, LineTarget):
            self._cache.put(target.chapter_id, target.line_number, state)
        else:
            self._states[target] = state
        if self._on_change:
            self._on_change(target, state)

    def _report(self, message: str) -> None:
        if self._on_error:
            self._on_error(message)

    # ── Reads ──────────────────────────────────────────

    async def _fetch(self, target: Target) -> Optional[LikeState]:
        try:
            state = await self._client.get_like_status(target, self._reader_id())
        except ServiceError as e:
            log.warning("Like status unavailable for %s: %s", target, e)
            return None
        self._apply(target, state)
        return state

    async def load(self, target: Target) -> LikeState:
        """Fetch the authoritative state; a failed read shows as zero."""
        state = await self._fetch(target)
        return state if state is not None else LikeState()

    # ── Writes ─────────────────────────────────────────

    async def click_line(self, chapter_id: str, line_number: int) -> Optional[LikeState]:
        """Handle a like click on a line.

        The first click on a line that has never been fetched only reveals its
        count. Later clicks toggle.
        """
        if not self._reader_id():
            return None
        target = LineTarget(chapter_id=chapter_id, line_number=line_number)
        if target in self._busy:
            log.debug("Ignoring like click on %s: request in flight", target)
            return None
        if self._cache.has_loaded(chapter_id, line_number):
            return await self.toggle(target)

        self._busy.add(target)
        try:
            return await self.load(target)
        finally:
            self._busy.discard(target)

    async def toggle(
        self, target: Target, current: Optional[LikeState] = None
    ) -> Optional[LikeState]:
        reader_id = self._reader_id()
        if not reader_id:
            return self.state(target)
        if target in self._busy:
            log.debug("Ignoring like toggle on %s: request in flight", target)
            return self.state(target)

        self._busy.add(target)
        try:
            if current is None:
                current = self.state(target)
            if current is None:
                # Never toggle blind: learn the real state first.
                current = await self._fetch(target)
                if current is None:
                    self._report("Could not load likes. Please try again.")
                    return None
            return await self._toggle_known(target, current, reader_id)
        finally:
            self._busy.discard(target)

    async def _toggle_known(
        self, target: Target, current: LikeState, reader_id: str
    ) -> LikeState:
        slot = self._slots.setdefault(target, _ToggleSlot())
        slot.phase = TogglePhase.PENDING
        slot.previous = current
        self._apply(target, current.toggled())

        action = "unlike" if current.is_liked else "like"
        try:
            confirmed = await self._client.set_like(target, action, reader_id)
        except ServiceError as e:
            log.warning("Like %s failed for %s: %s", action, target, e)
            self._rollback(target, slot)
            self._report("Like failed. Please try again.")
            return current
        except asyncio.CancelledError:
            self._rollback(target, slot)
            raise

        slot.phase = TogglePhase.SETTLED
        slot.previous = None
        self._apply(target, confirmed)
        return confirmed

    def _rollback(self, target: Target, slot: _ToggleSlot) -> None:
        if slot.phase is not TogglePhase.PENDING or slot.previous is None:
            return
        previous = slot.previous
        slot.phase = TogglePhase.SETTLED
        slot.previous = None
        self._apply(target, previous)
