"""
capture.orchestrator
单页采集编排：并发运行片段扫描与整页截图，合并为一条 CaptureRecord。

结果分三类：
  - ok          扫描与截图均成功且至少 1 个片段，记录已交给 Store（若提供）；
  - no_content  页面上没有任何标记片段，不产生记录，Store 不变；
  - failed      任一子步骤失败（或写入 Store 失败），error 为带原因的 CaptureFailed/StoreError。
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .errors import CaptureFailed, LQACaptureError, StoreError
from .scanner import RenderedDocument, scan_document
from .screenshot import InstrumentationChannel, capture_full_page
from .types import CaptureRecord
from .utils import iso_timestamp, new_page_id

if TYPE_CHECKING:  # pragma: no cover
    from flow.store import CaptureStore

logger = logging.getLogger(__name__)


class CaptureStatus(str, Enum):
    OK = "ok"
    NO_CONTENT = "no_content"
    FAILED = "failed"


@dataclass
class CaptureOutcome:
    status: CaptureStatus
    url: str
    record: Optional[CaptureRecord] = None
    error: Optional[LQACaptureError] = None
    warnings: List[Dict[str, Any]] = field(default_factory=list)
    # 写入后 Store 中的页面总数（未写入时为 None）
    total_pages: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.status is CaptureStatus.OK

    @property
    def message(self) -> str:
        if self.status is CaptureStatus.OK:
            n = len(self.record.segments) if self.record else 0
            total = f" ({self.total_pages} total)" if self.total_pages is not None else ""
            return f"Page captured with {n} segments!{total}"
        if self.status is CaptureStatus.NO_CONTENT:
            return "No LQA metadata segments found on the page."
        return f"Capture failed: {self.error}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "url": self.url,
            "page_id": self.record.id if self.record else None,
            "segments": len(self.record.segments) if self.record else 0,
            "error": self.error.to_dict() if self.error else None,
            "warnings": self.warnings,
            "message": self.message,
        }


def _as_capture_failed(exc: BaseException) -> CaptureFailed:
    if isinstance(exc, CaptureFailed):
        return exc
    return CaptureFailed(f"Capture process failed: {exc}", original=exc)


async def capture_page(
    document: RenderedDocument,
    channel: InstrumentationChannel,
    target: Any,
    url: str,
    *,
    store: Optional["CaptureStore"] = None,
    timeout: Optional[float] = None,
    device_pixel_ratio: float = 1.0,
) -> CaptureOutcome:
    """采集一个页面；两个子步骤都结束后再分类结果。

    device_pixel_ratio 随记录保存，供预览把 CSS 坐标映射到截图像素。
    """
    warnings: List[Dict[str, Any]] = []
    logger.info("capturing %s", url)

    screenshot_res, scan_res = await asyncio.gather(
        capture_full_page(channel, target, url=url, timeout=timeout, warnings=warnings),
        scan_document(document, warnings=warnings),
        return_exceptions=True,
    )
    for res in (screenshot_res, scan_res):
        if isinstance(res, BaseException):
            if not isinstance(res, Exception):
                raise res
            err = _as_capture_failed(res)
            logger.error("capture of %s failed: %s", url, err)
            return CaptureOutcome(CaptureStatus.FAILED, url, error=err, warnings=warnings)

    if not scan_res:
        logger.info("no marker segments found on %s", url)
        return CaptureOutcome(CaptureStatus.NO_CONTENT, url, warnings=warnings)

    record = CaptureRecord(
        id=new_page_id(),
        url=url,
        timestamp=iso_timestamp(),
        screenshot=screenshot_res,
        segments=scan_res,
        device_pixel_ratio=device_pixel_ratio,
    )
    total = None
    if store is not None:
        try:
            total = await store.append(record)
        except StoreError as e:
            logger.error("failed to store capture %s: %s", record.id, e)
            return CaptureOutcome(CaptureStatus.FAILED, url, error=e, warnings=warnings)
    logger.info("captured %s as %s (%d segments)", url, record.id, len(record.segments))
    return CaptureOutcome(CaptureStatus.OK, url, record=record, warnings=warnings, total_pages=total)
