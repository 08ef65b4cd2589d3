"""Incremental pagination per filter context.

One PaginationController owns at most one live PaginationSession. All
mutation happens on the event loop after a fetch completes, and the
`in_flight` flag is the only guard against overlapping fetches: it is set
before the first await, so a second load_next() issued while a fetch is
pending returns without touching the network.

A filter change replaces the session object. Fetches that finish after
their session was replaced are recognised by identity and context and
dropped.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from . import config
from .errors import error_message, is_retryable
from .models import FilterContext, PageRequest, TourItem, TourPage
from .sorting import sort_tours

logger = logging.getLogger(__name__)

FetchPage = Callable[[FilterContext, int, int], Awaitable[TourPage]]
Listener = Callable[["SessionSnapshot"], None]


class PageState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    LOADING_MORE = "loading_more"
    FAILED = "failed"


@dataclass
class PaginationSession:
    context: FilterContext
    items: List[TourItem] = field(default_factory=list)
    current_page: int = 1
    total_count: Optional[int] = None
    exhausted: bool = False
    in_flight: bool = False
    state: PageState = PageState.IDLE
    error: Optional[BaseException] = None
    failed_page: Optional[int] = None
    generation: int = 0
    _ids: set = field(default_factory=set, repr=False)

    def merge(self, page_items: List[TourItem]) -> int:
        added = 0
        for item in page_items:
            if item.id in self._ids:
                continue
            self._ids.add(item.id)
            self.items.append(item)
            added += 1
        return added


@dataclass(frozen=True)
class SessionSnapshot:
    context: Optional[FilterContext]
    items: Tuple[TourItem, ...]
    current_page: int
    total_count: Optional[int]
    exhausted: bool
    in_flight: bool
    state: PageState
    error: Optional[BaseException] = None
    # Bumped by every reset, so a reload of an equal context is still a new item set.
    generation: int = 0

    @property
    def has_more(self) -> bool:
        return not self.exhausted

    @property
    def can_retry(self) -> bool:
        return self.state is PageState.FAILED and self.error is not None and is_retryable(self.error)

    @property
    def error_text(self) -> Optional[str]:
        return error_message(self.error) if self.error is not None else None


_EMPTY = SessionSnapshot(
    context=None,
    items=(),
    current_page=0,
    total_count=None,
    exhausted=True,
    in_flight=False,
    state=PageState.IDLE,
)


class PaginationController:
    def __init__(self, fetch_page: FetchPage, page_size: Optional[int] = None) -> None:
        self._fetch_page = fetch_page
        self.page_size = page_size if page_size is not None else config.PAGE_SIZE
        self._session: Optional[PaginationSession] = None
        self._listeners: Dict[int, Listener] = {}
        self._next_listener_id = 0
        self._generation = 0

    def snapshot(self) -> SessionSnapshot:
        session = self._session
        if session is None:
            return _EMPTY
        return SessionSnapshot(
            context=session.context,
            items=tuple(session.items),
            current_page=session.current_page,
            total_count=session.total_count,
            exhausted=session.exhausted,
            in_flight=session.in_flight,
            state=session.state,
            error=session.error,
            generation=session.generation,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        listener_id = self._next_listener_id
        self._next_listener_id += 1
        self._listeners[listener_id] = listener

        def unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return unsubscribe

    async def reset(self, context: FilterContext) -> SessionSnapshot:
        """Start a fresh session for `context` and load its first page."""
        self._generation += 1
        session = PaginationSession(
            context=context,
            state=PageState.LOADING,
            current_page=1,
            generation=self._generation,
        )
        self._session = session
        await self._fetch(session, PageRequest(context, 1, self.page_size))
        return self.snapshot()

    async def load_next(self) -> SessionSnapshot:
        session = self._session
        if session is None or session.exhausted or session.in_flight:
            return self.snapshot()
        session.state = PageState.LOADING_MORE
        request = PageRequest(session.context, session.current_page + 1, self.page_size)
        await self._fetch(session, request)
        return self.snapshot()

    async def retry(self) -> SessionSnapshot:
        """Re-issue the page that failed, once per failure."""
        session = self._session
        if (
            session is None
            or session.in_flight
            or session.state is not PageState.FAILED
            or session.error is None
            or not is_retryable(session.error)
            or session.failed_page is None
        ):
            return self.snapshot()
        page_no = session.failed_page
        session.exhausted = False
        session.error = None
        session.state = PageState.LOADING if page_no == 1 else PageState.LOADING_MORE
        await self._fetch(session, PageRequest(session.context, page_no, self.page_size))
        return self.snapshot()

    def close(self) -> None:
        self._session = None
        self._listeners.clear()

    def _is_current(self, session: PaginationSession) -> bool:
        current = self._session
        return current is session and current.context == session.context

    async def _fetch(self, session: PaginationSession, request: PageRequest) -> None:
        session.in_flight = True
        self._notify(session)
        try:
            page = await self._fetch_page(request.filter_context, request.page_number, request.page_size)
        except Exception as exc:
            if not self._is_current(session):
                logger.debug("Dropping failure for superseded page %s", request.page_number)
                return
            session.in_flight = False
            session.exhausted = True
            session.state = PageState.FAILED
            session.error = exc
            session.failed_page = request.page_number
            logger.warning("Page %s failed: %s", request.page_number, exc)
            self._notify(session)
            return

        if not self._is_current(session):
            logger.debug("Dropping stale page %s for %s", request.page_number, request.filter_context)
            return

        page_items = sort_tours(page.items, session.context.sort_order)
        session.merge(page_items)
        session.current_page = request.page_number
        session.total_count = page.total_count
        if page.total_count is not None:
            session.exhausted = len(session.items) >= page.total_count or not page_items
        else:
            session.exhausted = not page_items
        session.in_flight = False
        session.state = PageState.READY
        session.error = None
        session.failed_page = None
        self._notify(session)

    def _notify(self, session: PaginationSession) -> None:
        if self._session is not session or not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners.values()):
            listener(snapshot)
