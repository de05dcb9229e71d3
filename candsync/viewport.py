"""
Viewport visibility: which cached potential candidates fall inside the current
map view, where to draw them, and a polling watcher that re-renders on change.
"""
import asyncio
import re
from typing import Awaitable, Callable, Dict, List, Optional, Union
from urllib.parse import urlparse

from loguru import logger

from candsync.config import POLL_INTERVAL_S
from candsync.geo import to_geo, to_world, viewport_to_screen, world_size
from candsync.models import Candidate, GeoBounds, ScreenMarker, Viewport

RE_MAP_PATH = re.compile(r"/(-?\d+\.?\d*),(-?\d+\.?\d*),(\d+\.?\d*)")


def bounds_from_viewport(viewport: Viewport) -> GeoBounds:
    """Geographic box covered by the viewport's pixel extent."""
    cx, cy = to_world(viewport.center_lng, viewport.center_lat)
    units_per_px = 1 / world_size(viewport.zoom)

    x_min = cx - (viewport.width / 2) * units_per_px
    x_max = cx + (viewport.width / 2) * units_per_px
    y_min = cy - (viewport.height / 2) * units_per_px
    y_max = cy + (viewport.height / 2) * units_per_px

    # World y grows southward
    sw_lng, sw_lat = to_geo(x_min, y_max)
    ne_lng, ne_lat = to_geo(x_max, y_min)
    return GeoBounds(sw_lat=sw_lat, sw_lng=sw_lng, ne_lat=ne_lat, ne_lng=ne_lng)


def visible_candidates(candidates: Dict[str, Candidate], viewport: Viewport) -> List[ScreenMarker]:
    """
    Potential candidates inside the viewport, projected to pixels.

    Args:
        candidates: ID-keyed candidate mapping.
        viewport: Current map viewport.

    Returns:
        List[ScreenMarker]: Sorted by ascending y so lower markers are drawn last.
    """
    bounds = bounds_from_viewport(viewport)
    center = (viewport.center_lng, viewport.center_lat)
    markers = []
    for cid, cand in candidates.items():
        if not cand.is_potential or not bounds.contains(cand.lat, cand.lng):
            continue
        x, y = viewport_to_screen(cand.lng, cand.lat, center, viewport.zoom, viewport.width, viewport.height)
        markers.append(ScreenMarker(id=cid, candidate=cand, x=x, y=y))
    markers.sort(key=lambda m: m.y)
    return markers


def parse_viewport_from_url(url: str, width: int, height: int) -> Optional[Viewport]:
    """Read `/<lat>,<lng>,<zoom>` from a map URL or path."""
    path = urlparse(url).path if "://" in url else url
    match = RE_MAP_PATH.search(path)
    if not match:
        return None
    lat, lng, zoom = (float(g) for g in match.groups())
    return Viewport(center_lat=lat, center_lng=lng, zoom=zoom, width=width, height=height)


RenderCallback = Callable[[List[ScreenMarker], Viewport], Union[None, Awaitable[None]]]


class ViewportWatcher:
    """
    Polls the viewport and re-renders visible markers only when the rounded
    viewport key changes, or when a resize is reported.
    """

    def __init__(
        self,
        get_viewport: Callable[[], Optional[Viewport]],
        load_candidates: Callable[[], Dict[str, Candidate]],
        render: RenderCallback,
        interval_s: float = POLL_INTERVAL_S,
    ):
        self.get_viewport = get_viewport
        self.load_candidates = load_candidates
        self.render = render
        self.interval_s = interval_s
        self.last_key = ""
        self._task: Optional[asyncio.Task] = None

    async def _render(self, viewport: Viewport) -> List[ScreenMarker]:
        markers = visible_candidates(self.load_candidates(), viewport)
        out = self.render(markers, viewport)
        if asyncio.iscoroutine(out):
            await out
        logger.debug(f"{len(markers)} potential POIs in bounds.")
        return markers

    async def poll_once(self) -> bool:
        """One polling tick. Returns True if a render happened."""
        viewport = self.get_viewport()
        if viewport is None:
            return False
        key = viewport.key()
        if key == self.last_key:
            return False
        self.last_key = key
        await self._render(viewport)
        return True

    async def notify_resize(self) -> bool:
        """Map surface resized: re-render regardless of the key."""
        viewport = self.get_viewport()
        if viewport is None:
            return False
        self.last_key = viewport.key()
        await self._render(viewport)
        return True

    async def _run(self):
        while True:
            try:
                await self.poll_once()
            except Exception as e:
                logger.error(f"Viewport render failed: {e}")
            await asyncio.sleep(self.interval_s)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())
        return self._task

    async def stop(self):
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
