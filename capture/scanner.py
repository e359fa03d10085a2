"""
capture.scanner
在已渲染文档中查找带标记的文本片段，解码元数据并计算每个片段的页面坐标。

文档提供方（RenderedDocument）只需两类能力：
  - text_nodes(): 按文档顺序返回 body 下的文本节点快照（含父元素标签与计算样式）；
    文档没有 body 时抛 ScanError；
  - range_rects(ranges): 把 (节点, 起止偏移) 解析为视口矩形，并给出当前滚动偏移。
生产环境的实现见 browser.page_agent.PageDocument；测试中使用内存假文档。

单个片段的元数据/几何失败只记录日志与 warnings，不会中断整页扫描。
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Protocol, Sequence

from .constants import DECODING_ERROR_KEY, SKIPPED_TAGS, TARGET_PATTERN
from .marker_codec import decode_metadata
from .types import Rect, Segment

logger = logging.getLogger(__name__)

TARGET_RE = re.compile(TARGET_PATTERN)


@dataclass
class TextNode:
    index: int
    text: str
    # 父元素标签（大写）；None 表示没有父元素
    tag: Optional[str]
    display: str = ""
    visibility: str = ""
    opacity: str = "1"


@dataclass
class RangeRequest:
    node: int
    start: int
    end: int


@dataclass
class RangeRects:
    # 与请求一一对应；解析失败的位置为 None，原因写在 errors 同一位置
    rects: List[Optional[Rect]]
    errors: List[Optional[str]] = field(default_factory=list)
    scroll_x: float = 0.0
    scroll_y: float = 0.0


class RenderedDocument(Protocol):
    async def text_nodes(self) -> List[TextNode]: ...

    async def range_rects(self, ranges: Sequence[RangeRequest]) -> RangeRects: ...


@dataclass
class MarkerMatch:
    start: int
    end: int
    encoded: str
    text: str


def find_markers(text: str) -> Iterator[MarkerMatch]:
    """在一段文本中依次查找标记片段（不重叠，按出现顺序）。"""
    for m in TARGET_RE.finditer(text or ""):
        yield MarkerMatch(start=m.start(), end=m.end(), encoded=m.group(1), text=m.group(2))


def is_content_node(node: TextNode) -> bool:
    """父元素不可见或属于脚本/样式等非内容元素时返回 False。"""
    if not node.tag:
        return False
    if node.tag.upper() in SKIPPED_TAGS:
        return False
    if node.display == "none" or node.visibility == "hidden":
        return False
    try:
        if float(node.opacity) == 0:
            return False
    except (TypeError, ValueError):
        pass
    return True


async def scan_document(
    document: RenderedDocument,
    *,
    warnings: Optional[List[Dict[str, Any]]] = None,
) -> List[Segment]:
    """扫描整个文档，返回按文档顺序排列的 Segment 列表。"""
    nodes = await document.text_nodes()

    pending: List[tuple] = []
    for node in nodes:
        if not is_content_node(node):
            continue
        for match in find_markers(node.text):
            metadata = decode_metadata(match.encoded)
            if DECODING_ERROR_KEY in metadata:
                logger.warning(
                    "failed to decode metadata in node %d at %d: %s",
                    node.index, match.start, metadata[DECODING_ERROR_KEY],
                )
                if warnings is not None:
                    warnings.append({
                        "code": "METADATA_DECODE_ERROR",
                        "stage": "scan",
                        "node": node.index,
                        "offset": match.start,
                        "error": metadata[DECODING_ERROR_KEY],
                    })
            pending.append((match, metadata, RangeRequest(node.index, match.start, match.end)))

    if not pending:
        logger.debug("no marker spans in %d text nodes", len(nodes))
        return []

    resolved = await document.range_rects([req for _, _, req in pending])
    segments: List[Segment] = []
    for i, (match, metadata, req) in enumerate(pending):
        rect = resolved.rects[i] if i < len(resolved.rects) else None
        if rect is None:
            err = resolved.errors[i] if i < len(resolved.errors) else None
            logger.warning("range error for node %d [%d:%d]: %s", req.node, req.start, req.end, err)
            if warnings is not None:
                warnings.append({"code": "RANGE_ERROR", "stage": "scan", "node": req.node, "offset": req.start, "error": err})
            continue
        if rect.is_empty:
            continue
        page_rect = Rect(
            x=rect.x + resolved.scroll_x,
            y=rect.y + resolved.scroll_y,
            width=rect.width,
            height=rect.height,
        )
        segments.append(Segment.from_match(match.text, page_rect, metadata))
    logger.debug("scanned %d nodes, %d marker spans, %d segments", len(nodes), len(pending), len(segments))
    return segments
