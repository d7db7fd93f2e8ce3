"""Session pool - proxy/cookie identities rotated on failure

A session accumulates an error score. Retiring it (blocking detected,
inconsistent results, failed detail fetch) makes it unusable at once; the pool
hands out a fresh one in its place.
"""

from __future__ import annotations

import itertools
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from harvester.core.config import settings
from harvester.core.logging import logger, sanitize_for_log


@dataclass
class Session:
    """One browser identity (proxy + cookies)."""

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    proxy_url: Optional[str] = None
    max_error_score: int = 3
    max_usage: int = 50

    error_score: float = 0.0
    usage_count: int = 0
    retired: bool = False
    in_flight: int = 0

    def retire(self) -> None:
        if not self.retired:
            logger.debug(f"[SESSION] Retiring session {self.id}")
        self.retired = True

    def mark_bad(self) -> None:
        self.error_score += 1
        if self.error_score >= self.max_error_score:
            self.retire()

    def mark_good(self) -> None:
        self.error_score = max(0.0, self.error_score - 0.5)

    def use(self) -> None:
        self.usage_count += 1

    def is_usable(self) -> bool:
        return (
            not self.retired
            and self.error_score < self.max_error_score
            and self.usage_count < self.max_usage
        )


class SessionPool:
    """Fixed-size pool of usable sessions

    Usage:
        pool = SessionPool()
        session = pool.get_session()
        ...
        session.retire()  # next get_session() replaces it
        await pool.release(session)  # discards it once nothing holds it
    """

    def __init__(
        self,
        size: Optional[int] = None,
        proxy_urls: Optional[list[str]] = None,
        max_error_score: Optional[int] = None,
        max_usage: Optional[int] = None,
        on_discard: Optional[Callable[[Session], Awaitable[None]]] = None,
    ):
        self.size = size or settings.session_pool_size
        self.max_error_score = max_error_score or settings.session_max_error_score
        self.max_usage = max_usage or settings.session_max_usage

        urls = proxy_urls if proxy_urls is not None else settings.crawler_proxy_urls
        self._proxies = itertools.cycle(urls) if urls else None
        self._sessions: list[Session] = []
        self._cursor = 0
        self.created_count = 0
        self.on_discard = on_discard

    def _create(self) -> Session:
        proxy = next(self._proxies) if self._proxies else None
        session = Session(
            proxy_url=proxy,
            max_error_score=self.max_error_score,
            max_usage=self.max_usage,
        )
        self.created_count += 1
        logger.debug(f"[SESSION] Created session {session.id} proxy={sanitize_for_log(proxy or 'none')}")
        return session

    def get_session(self) -> Session:
        """Next usable session, round-robin; unusable ones are replaced."""
        self._sessions = [s for s in self._sessions if s.is_usable()]
        while len(self._sessions) < self.size:
            self._sessions.append(self._create())

        session = self._sessions[self._cursor % len(self._sessions)]
        self._cursor += 1
        session.use()
        session.in_flight += 1
        return session

    async def release(self, session: Session) -> None:
        """Hand a session back; the last holder of an unusable one discards it."""
        session.in_flight = max(0, session.in_flight - 1)
        if session.in_flight or session.is_usable():
            return
        if self.on_discard is not None:
            logger.debug(f"[SESSION] Discarding session {session.id}")
            await self.on_discard(session)

    @property
    def usable_count(self) -> int:
        return sum(1 for s in self._sessions if s.is_usable())
