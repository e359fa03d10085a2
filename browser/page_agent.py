"""
Page agent: the in-page half of the segment scanner.

PageDocument implements capture.scanner.RenderedDocument on top of a live
Playwright page. Two small scripts run inside the page:
  - collect text nodes under document.body (only those containing a ZWSP),
    together with the parent element's tag and computed style;
  - resolve (node, start, end) ranges to viewport rectangles plus scroll offsets.
Matching and metadata decoding stay on the Python side.

Offsets handed to the page are converted from Python code-point offsets to
UTF-16 code units, which is what DOM Range expects.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence

from capture.errors import ScanError
from capture.scanner import RangeRects, RangeRequest, TextNode
from capture.types import Rect

logger = logging.getLogger(__name__)

COLLECT_TEXT_NODES_JS = r"""
() => {
  if (!document.body) {
    return { error: "Document body not found for text extraction." };
  }
  const walker = document.createTreeWalker(document.body, NodeFilter.SHOW_TEXT);
  const kept = [];
  const out = [];
  let node;
  while ((node = walker.nextNode())) {
    const text = node.nodeValue || "";
    if (text.indexOf("\u200B") < 0) continue;
    const el = node.parentElement;
    const item = { index: kept.length, text: text, tag: null, display: "", visibility: "", opacity: "1" };
    if (el) {
      const s = window.getComputedStyle(el);
      item.tag = el.tagName;
      item.display = s.display;
      item.visibility = s.visibility;
      item.opacity = s.opacity;
    }
    kept.push(node);
    out.push(item);
  }
  window.__lqaTextNodes = kept;
  return { nodes: out };
}
"""

RESOLVE_RANGES_JS = r"""
(ranges) => {
  const nodes = window.__lqaTextNodes || [];
  const rects = [];
  const errors = [];
  for (const r of ranges) {
    const node = nodes[r.node];
    if (!node || !node.isConnected) {
      rects.push(null);
      errors.push("text node is no longer attached");
      continue;
    }
    try {
      const range = document.createRange();
      range.setStart(node, r.start);
      range.setEnd(node, r.end);
      const b = range.getBoundingClientRect();
      rects.push({ x: b.left, y: b.top, width: b.width, height: b.height });
      errors.push(null);
    } catch (e) {
      rects.push(null);
      errors.push(String((e && e.message) || e));
    }
  }
  return { rects: rects, errors: errors, scrollX: window.scrollX || 0, scrollY: window.scrollY || 0 };
}
"""


def _utf16_len(s: str) -> int:
    return len(s.encode("utf-16-le")) // 2


class PageDocument:
    def __init__(self, page) -> None:
        self._page = page
        self._texts: Dict[int, str] = {}

    async def text_nodes(self) -> List[TextNode]:
        result = await self._page.evaluate(COLLECT_TEXT_NODES_JS)
        if not isinstance(result, dict):
            raise ScanError("Text extraction script returned no result.")
        if result.get("error"):
            raise ScanError(str(result["error"]))
        nodes: List[TextNode] = []
        for item in result.get("nodes") or []:
            node = TextNode(
                index=int(item["index"]),
                text=str(item.get("text") or ""),
                tag=item.get("tag"),
                display=str(item.get("display") or ""),
                visibility=str(item.get("visibility") or ""),
                opacity=str(item.get("opacity") if item.get("opacity") is not None else "1"),
            )
            nodes.append(node)
        self._texts = {n.index: n.text for n in nodes}
        logger.debug("page agent returned %d candidate text nodes", len(nodes))
        return nodes

    def _to_utf16(self, req: RangeRequest) -> Dict[str, int]:
        text = self._texts.get(req.node, "")
        return {
            "node": req.node,
            "start": _utf16_len(text[:req.start]),
            "end": _utf16_len(text[:req.end]),
        }

    async def range_rects(self, ranges: Sequence[RangeRequest]) -> RangeRects:
        payload = [self._to_utf16(r) for r in ranges]
        try:
            result: Dict[str, Any] = await self._page.evaluate(RESOLVE_RANGES_JS, payload)
        except Exception as e:
            logger.warning("range resolution failed for the whole batch: %s", e)
            return RangeRects(rects=[None] * len(ranges), errors=[str(e)] * len(ranges))
        rects = [Rect(**r) if r else None for r in (result.get("rects") or [])]
        return RangeRects(
            rects=rects,
            errors=list(result.get("errors") or []),
            scroll_x=float(result.get("scrollX") or 0),
            scroll_y=float(result.get("scrollY") or 0),
        )

    async def device_pixel_ratio(self) -> float:
        try:
            return float(await self._page.evaluate("() => window.devicePixelRatio || 1"))
        except Exception as e:
            logger.debug("devicePixelRatio unavailable, assuming 1: %s", e)
            return 1.0
