"""数据模型定义（Pydantic）。

作用：统一片段、采集记录、索引条目与流程清单的数据结构，便于跨模块传递与落库。
输入：扫描得到的文本/几何/元数据，截图，存储中的记录。
输出：Segment / CaptureRecord / CaptureIndexEntry / FlowManifest 等结构化对象。
依赖：pydantic
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping

from pydantic import BaseModel, ConfigDict, Field

from .constants import RESERVED_SEGMENT_KEYS, SEGMENT_FIELDS


class Rect(BaseModel):
    x: float
    y: float
    width: float
    height: float

    @property
    def is_empty(self) -> bool:
        return self.width == 0 and self.height == 0


class Segment(BaseModel):
    """一个带标记的文本片段；元数据字段以 extra 形式平铺在顶层。"""

    model_config = ConfigDict(extra="allow")

    text: str
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_match(cls, text: str, rect: Rect, metadata: Mapping[str, Any]) -> "Segment":
        # 显式字段优先，元数据中的同名键被丢弃
        extra = {k: v for k, v in metadata.items() if k not in SEGMENT_FIELDS}
        return cls(text=text, x=rect.x, y=rect.y, width=rect.width, height=rect.height, **extra)

    @property
    def metadata(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})

    def to_manifest(self) -> Dict[str, Any]:
        """清单中的片段：显式字段在前，其余元数据去掉保留名后追加。"""
        out: Dict[str, Any] = {k: getattr(self, k) for k in SEGMENT_FIELDS}
        for k, v in self.metadata.items():
            if k not in RESERVED_SEGMENT_KEYS:
                out[k] = v
        return out


class CaptureIndexEntry(BaseModel):
    """索引中的轻量条目；落库时使用 camelCase 键名。"""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    url: str
    timestamp: str
    est_screenshot_size: float = Field(default=0.0, alias="estScreenshotSize")
    est_text_content_size: int = Field(default=0, alias="estTextContentSize")
    has_content: bool = Field(default=True, alias="hasContent")


class CaptureRecord(BaseModel):
    """一次页面采集的完整记录（含大体积截图），存入后不可变。"""

    model_config = ConfigDict(frozen=True)

    id: str
    url: str
    timestamp: str
    screenshot: str
    segments: List[Segment] = Field(default_factory=list)
    # 截图像素 / CSS 像素，预览时用于把片段坐标映射到截图上
    device_pixel_ratio: float = 1.0

    def index_entry(self) -> CaptureIndexEntry:
        text_json = json.dumps(
            [s.model_dump() for s in self.segments], ensure_ascii=False, separators=(",", ":")
        )
        return CaptureIndexEntry(
            id=self.id,
            url=self.url,
            timestamp=self.timestamp,
            est_screenshot_size=len(self.screenshot) * 0.75,
            est_text_content_size=len(text_json),
            has_content=bool(self.segments),
        )


class FlowPage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    page_id: str = Field(alias="pageId")
    original_url: str = Field(alias="originalUrl")
    timestamp: str
    image_file: str = Field(alias="imageFile")
    segments: List[Dict[str, Any]] = Field(default_factory=list)


class FlowManifest(BaseModel):
    """flow_metadata.json 的结构；页面顺序以此为准。"""

    model_config = ConfigDict(populate_by_name=True)

    flow_name: str = Field(alias="flowName")
    created_at: str = Field(alias="createdAt")
    pages: List[FlowPage] = Field(default_factory=list)

    def to_json(self) -> str:
        return json.dumps(self.model_dump(by_alias=True), ensure_ascii=False, indent=2)
