"""
flow.packager
将 Store 中当前的采集序列打包为单个 .lqaboss 流程文件（ZIP）。

归档内容：
  - flow_metadata.json         清单（flowName/createdAt/pages），页面顺序与片段数据以此为准；
  - page_<序号>_<page_id>.png   每页一张截图，序号为索引中的位置（从 1 开始）。

逐条从索引解析整页数据；缺失或损坏的页面记录日志后跳过。
没有可打包页面时抛 EmptyFlow。打包不修改 Store，导出后是否清空由调用方决定。
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
import os
import zipfile
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from capture.constants import FLOW_METADATA_FILE, FLOW_MIME_TYPE
from capture.errors import EmptyFlow
from capture.types import CaptureRecord, FlowManifest, FlowPage
from capture.utils import default_flow_name, ensure_unique_path, flow_filename, iso_timestamp, strip_data_url

from .store import CaptureStore

logger = logging.getLogger(__name__)


@dataclass
class FlowArchive:
    filename: str
    manifest: FlowManifest
    data: bytes
    # 索引中有但未能解析出整页数据的页面 id
    skipped: List[str] = field(default_factory=list)
    mime_type: str = FLOW_MIME_TYPE

    @property
    def page_count(self) -> int:
        return len(self.manifest.pages)


def image_name(ordinal: int, page_id: str) -> str:
    return f"page_{ordinal}_{page_id}.png"


def page_manifest(record: CaptureRecord, image_file: str) -> FlowPage:
    return FlowPage(
        page_id=record.id,
        original_url=record.url,
        timestamp=record.timestamp,
        image_file=image_file,
        segments=[s.to_manifest() for s in record.segments],
    )


async def build_flow_archive(
    store: CaptureStore,
    flow_name: Optional[str] = None,
    *,
    created_at: Optional[datetime] = None,
) -> FlowArchive:
    """读取 Store 当前快照并生成流程归档（内存中的 ZIP 字节）。"""
    entries = await store.snapshot()
    if not entries:
        raise EmptyFlow("No pages were available to include in the flow.")

    name = (flow_name or "").strip() or default_flow_name(created_at)
    manifest = FlowManifest(flow_name=name, created_at=iso_timestamp(created_at))
    skipped: List[str] = []

    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for i, entry in enumerate(entries, start=1):
            record = await store.load(entry.id)
            if record is None:
                logger.warning("Could not retrieve full data for page ID %s. Skipping.", entry.id)
                skipped.append(entry.id)
                continue
            try:
                image = base64.b64decode(strip_data_url(record.screenshot), validate=True)
            except (binascii.Error, ValueError) as e:
                logger.warning("Screenshot of page ID %s is not valid base64 (%s). Skipping.", entry.id, e)
                skipped.append(entry.id)
                continue
            fname = image_name(i, record.id)
            zf.writestr(fname, image)
            manifest.pages.append(page_manifest(record, fname))

        if not manifest.pages:
            raise EmptyFlow("Failed to process any pages for the flow; full page data might be missing.")
        zf.writestr(FLOW_METADATA_FILE, manifest.to_json().encode("utf-8"))

    logger.info("packaged flow %r: %d pages, %d skipped", name, len(manifest.pages), len(skipped))
    return FlowArchive(filename=flow_filename(name), manifest=manifest, data=buf.getvalue(), skipped=skipped)


def write_flow_file(archive: FlowArchive, out_dir: str, *, overwrite: bool = False) -> str:
    """把归档写到 out_dir/<清洗后的流程名>.lqaboss，返回写入的绝对路径。"""
    os.makedirs(out_dir, exist_ok=True)
    target = os.path.join(out_dir, archive.filename)
    if not overwrite:
        target = ensure_unique_path(target)
    with open(target, "wb") as f:
        f.write(archive.data)
    return os.path.abspath(target)
