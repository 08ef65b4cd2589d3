"""Selection and hover synchronization between the list and the map."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Sequence

from .geo import Viewport, bounding_viewport, normalize
from .models import FilterContext, GeoPoint, TourItem, marker_color
from .pagination import PageState, SessionSnapshot
from .readiness import MapReadinessGate, ReadinessOutcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MapMarker:
    id: str
    lat: float
    lng: float
    label: str
    color: str


class MapSurface(Protocol):
    def show_markers(self, markers: Sequence[MapMarker]) -> None: ...

    def add_markers(self, markers: Sequence[MapMarker]) -> None: ...

    def pan_to(self, point: GeoPoint) -> None: ...

    def open_callout(self, item_id: str) -> None: ...

    def preview_marker(self, item_id: Optional[str]) -> None: ...

    def fit_viewport(self, viewport: Viewport) -> None: ...


class ListSurface(Protocol):
    def scroll_to(self, item_id: str) -> None: ...

    def highlight_row(self, item_id: Optional[str]) -> None: ...

    def preview_row(self, item_id: Optional[str]) -> None: ...


@dataclass(frozen=True)
class SelectionSnapshot:
    selected_id: Optional[str]
    hovered_id: Optional[str]

    @property
    def emphasized_id(self) -> Optional[str]:
        # Selection keeps visual precedence; hover only previews.
        return self.selected_id or self.hovered_id


SelectionListener = Callable[[SelectionSnapshot], None]


def build_markers(items: Iterable[TourItem], points: Dict[str, Optional[GeoPoint]]) -> List[MapMarker]:
    markers: List[MapMarker] = []
    for item in items:
        point = points.get(item.id)
        if point is None:
            continue
        markers.append(
            MapMarker(id=item.id, lat=point.lat, lng=point.lng, label=item.title, color=marker_color(item.category_id))
        )
    return markers


class MapListSyncController:
    """Owns SelectionState; surfaces only receive commands from here."""

    def __init__(
        self,
        list_surface: Optional[ListSurface] = None,
        map_surface: Optional[MapSurface] = None,
        gate: Optional[MapReadinessGate] = None,
    ) -> None:
        self.list_surface = list_surface
        self.map_surface = map_surface
        self.gate = gate
        self._selected_id: Optional[str] = None
        self._hovered_id: Optional[str] = None
        self._items: Dict[str, TourItem] = {}
        self._points: Dict[str, Optional[GeoPoint]] = {}
        self._context: Optional[FilterContext] = None
        self._generation: Optional[int] = None
        self._viewport: Optional[Viewport] = None
        self._listeners: List[SelectionListener] = []

    # --- observation ---

    def snapshot(self) -> SelectionSnapshot:
        return SelectionSnapshot(selected_id=self._selected_id, hovered_id=self._hovered_id)

    def subscribe(self, listener: SelectionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def point_for(self, item_id: str) -> Optional[GeoPoint]:
        return self._points.get(item_id)

    @property
    def viewport(self) -> Optional[Viewport]:
        return self._viewport

    # --- item set changes ---

    def on_session(self, snapshot: SessionSnapshot) -> None:
        """Pagination listener: refit on a new session, only add markers on append."""
        if snapshot.state is PageState.LOADING:
            return
        new_session = snapshot.generation != self._generation or snapshot.context != self._context
        if new_session or (not self._items and snapshot.items):
            self._context = snapshot.context
            self._generation = snapshot.generation
            self.show_items(snapshot.items)
            return
        fresh = [item for item in snapshot.items if item.id not in self._items]
        if fresh:
            self.append_items(fresh)

    def show_items(self, items: Sequence[TourItem]) -> Viewport:
        self._items = {item.id: item for item in items}
        self._points = {item.id: normalize(item.raw_x, item.raw_y) for item in items}
        if self._selected_id is not None and self._selected_id not in self._items:
            self._selected_id = None
        if self._hovered_id is not None and self._hovered_id not in self._items:
            self._hovered_id = None
        if self._map_ready():
            self.map_surface.show_markers(build_markers(items, self._points))
        viewport = self.fit_all(self._points.values())
        self._notify()
        return viewport

    def append_items(self, items: Sequence[TourItem]) -> None:
        fresh = [item for item in items if item.id not in self._items]
        for item in fresh:
            self._items[item.id] = item
            self._points[item.id] = normalize(item.raw_x, item.raw_y)
        if fresh and self._map_ready():
            self.map_surface.add_markers(build_markers(fresh, self._points))

    def fit_all(self, points: Iterable[Optional[GeoPoint]]) -> Viewport:
        viewport = bounding_viewport(points)
        self._viewport = viewport
        if self._map_ready():
            self.map_surface.fit_viewport(viewport)
        return viewport

    # --- selection / hover ---

    def select_item(self, item_id: str) -> None:
        self._selected_id = item_id
        if self.list_surface is not None:
            self.list_surface.scroll_to(item_id)
            self.list_surface.highlight_row(item_id)
        point = self._points.get(item_id)
        if point is None:
            logger.debug("Item %s has no map position; skipping map pan", item_id)
        elif self._map_ready():
            self.map_surface.pan_to(point)
            self.map_surface.open_callout(item_id)
        self._notify()

    def clear_selection(self) -> None:
        self._selected_id = None
        if self.list_surface is not None:
            self.list_surface.highlight_row(None)
        self._notify()

    def hover_item(self, item_id: Optional[str]) -> None:
        self._hovered_id = item_id
        if self.list_surface is not None:
            self.list_surface.preview_row(item_id)
        if self._map_ready():
            if item_id is None or self._points.get(item_id) is None:
                self.map_surface.preview_marker(None)
            else:
                self.map_surface.preview_marker(item_id)
        if item_id is None and self._selected_id is not None:
            # The selected item keeps its emphasis once the pointer leaves.
            if self.list_surface is not None:
                self.list_surface.highlight_row(self._selected_id)
            if self._map_ready() and self._points.get(self._selected_id) is not None:
                self.map_surface.open_callout(self._selected_id)
        self._notify()

    # --- map lifecycle ---

    async def attach_map(self, surface: MapSurface, timeout: Optional[float] = None) -> ReadinessOutcome:
        """Wait for the map library, then replay the current markers and camera."""
        self.map_surface = surface
        if self.gate is not None:
            outcome = await self.gate.wait(timeout)
        else:
            outcome = ReadinessOutcome.READY
        if outcome is not ReadinessOutcome.READY:
            logger.warning("Map unavailable (%s); list keeps working without it", outcome.value)
            return outcome

        surface.show_markers(build_markers(self._items.values(), self._points))
        surface.fit_viewport(self._viewport or bounding_viewport(self._points.values()))
        selected = self._selected_id
        if selected is not None and self._points.get(selected) is not None:
            surface.pan_to(self._points[selected])
            surface.open_callout(selected)
        return outcome

    def _map_ready(self) -> bool:
        if self.map_surface is None:
            return False
        return self.gate is None or self.gate.is_ready

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)
