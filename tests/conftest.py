"""
Shared pytest fixtures for the capture pipeline test suite.

Provides in-memory stand-ins for the rendered document and the CDP channel,
a memory-backed CaptureStore, and helpers for building marker text and
small PNG screenshots, so tests run without a browser.
"""

import asyncio
import base64
import io
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import pytest
from PIL import Image

PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from capture.constants import PNG_DATA_URL_PREFIX, ZWSP  # noqa: E402
from capture.errors import ScanError  # noqa: E402
from capture.marker_codec import encode, encode_metadata  # noqa: E402
from capture.scanner import RangeRects, RangeRequest, TextNode  # noqa: E402
from capture.types import CaptureRecord, Rect, Segment  # noqa: E402
from flow.store import CaptureStore, MemoryBackend  # noqa: E402


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def marked(text: str, metadata: Optional[Dict[str, Any]] = None, *, raw: Optional[bytes] = None) -> str:
    """Build a marker-encoded span around ``text``."""
    encoded = encode(raw) if raw is not None else encode_metadata(metadata or {})
    return f"{ZWSP}{encoded}{text}{ZWSP}"


def png_bytes(width: int = 40, height: int = 30, color=(255, 255, 255)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def png_b64(width: int = 40, height: int = 30) -> str:
    return base64.b64encode(png_bytes(width, height)).decode("ascii")


def make_record(page_id: str, url: str, segments: Optional[List[Segment]] = None) -> CaptureRecord:
    if segments is None:
        segments = [Segment(text="Hello", x=1, y=2, width=30, height=10, sid="s1")]
    return CaptureRecord(
        id=page_id,
        url=url,
        timestamp="2024-01-02T03:04:05.000Z",
        screenshot=PNG_DATA_URL_PREFIX + png_b64(),
        segments=segments,
    )


def run(coro):
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

def _default_rect(req: RangeRequest) -> Rect:
    return Rect(x=10 + req.start, y=20 + 100 * req.node, width=50, height=12)


class FakeDocument:
    """In-memory RenderedDocument."""

    def __init__(
        self,
        nodes: Sequence[TextNode],
        *,
        rect_for: Callable[[RangeRequest], Rect] = _default_rect,
        scroll_x: float = 0.0,
        scroll_y: float = 0.0,
        has_body: bool = True,
    ) -> None:
        self.nodes = list(nodes)
        self.rect_for = rect_for
        self.scroll_x = scroll_x
        self.scroll_y = scroll_y
        self.has_body = has_body
        self.requests: List[RangeRequest] = []

    async def text_nodes(self) -> List[TextNode]:
        if not self.has_body:
            raise ScanError("Document body not found for text extraction.")
        return list(self.nodes)

    async def range_rects(self, ranges: Sequence[RangeRequest]) -> RangeRects:
        self.requests.extend(ranges)
        rects, errors = [], []
        for r in ranges:
            try:
                rects.append(self.rect_for(r))
                errors.append(None)
            except Exception as e:
                rects.append(None)
                errors.append(str(e))
        return RangeRects(rects=rects, errors=errors, scroll_x=self.scroll_x, scroll_y=self.scroll_y)


class FakeChannel:
    """Records attach/send/detach calls; failures are injected per step."""

    def __init__(
        self,
        result: Optional[Dict[str, Any]] = None,
        *,
        attach_error: Optional[Exception] = None,
        send_error: Optional[Exception] = None,
        detach_error: Optional[Exception] = None,
        delay: float = 0.0,
    ) -> None:
        self.result = {"data": png_b64()} if result is None else result
        self.attach_error = attach_error
        self.send_error = send_error
        self.detach_error = detach_error
        self.delay = delay
        self.calls: List[Any] = []

    async def attach(self, target):
        self.calls.append("attach")
        if self.attach_error:
            raise self.attach_error
        return {"session_for": target}

    async def send(self, session, method, params=None):
        self.calls.append(("send", method, dict(params or {})))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.send_error:
            raise self.send_error
        return self.result

    async def detach(self, session):
        self.calls.append("detach")
        if self.detach_error:
            raise self.detach_error

    def count(self, name: str) -> int:
        return sum(1 for c in self.calls if c == name or (isinstance(c, tuple) and c[0] == name))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def store(backend):
    return CaptureStore(backend)


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def sample_nodes():
    return [
        TextNode(index=0, text="Intro " + marked("Hello", {"sid": "a1"}) + " tail", tag="P"),
        TextNode(index=1, text=marked("World", {"sid": "a2", "rid": "r"}), tag="SPAN"),
    ]
