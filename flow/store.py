"""存储：采集记录的索引与整页数据。

键空间：
  - lqaBossCapturedPagesIndex  有序的索引条目列表（轻量，用于列表展示/估算占用）；
  - lqa_page_<page_id>         每页完整记录（含截图 data URL）。
写入顺序为“先数据后索引”，索引写入失败时撤回已写的整页数据；两次写入之间没有事务保证，
索引中出现无数据的条目时，打包按“跳过并记录日志”处理。
后端：MemoryBackend（测试/单次运行）与 JsonDirBackend（每个键一个 JSON 文件）。
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
from typing import Any, Dict, Iterable, List, Optional, Protocol

from pydantic import ValidationError

from capture.constants import CAPTURED_PAGES_INDEX_KEY, PAGE_DATA_PREFIX
from capture.errors import StoreError
from capture.types import CaptureIndexEntry, CaptureRecord
from capture.utils import write_json

logger = logging.getLogger(__name__)


class KeyValueBackend(Protocol):
    async def get(self, key: str) -> Any: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def remove(self, keys: Iterable[str]) -> None: ...


class MemoryBackend:
    """进程内字典；值以 JSON 文本保存，取出时是独立副本。"""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Any:
        raw = self._data.get(key)
        return None if raw is None else json.loads(raw)

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value, ensure_ascii=False)

    async def remove(self, keys: Iterable[str]) -> None:
        for k in keys:
            self._data.pop(k, None)

    def keys(self) -> List[str]:
        return list(self._data)


class JsonDirBackend:
    """每个键对应目录下的一个 <key>.json 文件；阻塞 IO 放到线程中执行。"""

    def __init__(self, root: str) -> None:
        self.root = root

    def _path(self, key: str) -> str:
        safe = re.sub(r"[^0-9A-Za-z_.-]", "_", key)
        return os.path.join(self.root, f"{safe}.json")

    def _get_sync(self, key: str) -> Any:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _set_sync(self, key: str, value: Any) -> None:
        os.makedirs(self.root, exist_ok=True)
        write_json(self._path(key), value)

    def _remove_sync(self, keys: List[str]) -> None:
        for k in keys:
            try:
                os.remove(self._path(k))
            except FileNotFoundError:
                continue

    async def get(self, key: str) -> Any:
        return await asyncio.to_thread(self._get_sync, key)

    async def set(self, key: str, value: Any) -> None:
        await asyncio.to_thread(self._set_sync, key, value)

    async def remove(self, keys: Iterable[str]) -> None:
        await asyncio.to_thread(self._remove_sync, list(keys))


def page_data_key(page_id: str) -> str:
    return f"{PAGE_DATA_PREFIX}{page_id}"


class CaptureStore:
    """追加式、有序的采集记录集合，按页面 id 寻址。"""

    def __init__(self, backend: KeyValueBackend) -> None:
        self.backend = backend

    async def _raw_index(self) -> List[Any]:
        try:
            raw = await self.backend.get(CAPTURED_PAGES_INDEX_KEY)
        except Exception as e:
            raise StoreError(f"Failed to read capture index: {e}", original=e) from e
        return raw if isinstance(raw, list) else []

    async def entries(self) -> List[CaptureIndexEntry]:
        """当前索引条目（按采集顺序）；无法解析的条目被跳过。"""
        out: List[CaptureIndexEntry] = []
        for item in await self._raw_index():
            try:
                out.append(CaptureIndexEntry.model_validate(item))
            except ValidationError as e:
                logger.warning("skipping malformed index entry %r: %s", item, e)
        return out

    async def snapshot(self) -> List[CaptureIndexEntry]:
        """某一时刻的有序索引快照；之后的追加不影响已取得的快照。"""
        return list(await self.entries())

    async def count(self) -> int:
        return len(await self.entries())

    async def append(self, record: CaptureRecord) -> int:
        """先写整页数据，再追加索引条目；返回写入后的页面总数。"""
        entry = record.index_entry()
        try:
            await self.backend.set(page_data_key(record.id), record.model_dump())
        except Exception as e:
            raise StoreError(f"Failed to save page data for {record.id}: {e}", original=e) from e
        try:
            index = await self._raw_index()
            index.append(entry.model_dump(by_alias=True))
            await self.backend.set(CAPTURED_PAGES_INDEX_KEY, index)
        except Exception as e:
            # 索引写入失败时撤回整页数据
            await self._discard_page_data(record.id)
            if isinstance(e, StoreError):
                raise
            raise StoreError(f"Failed to update capture index: {e}", original=e) from e
        logger.debug("stored %s (%d pages)", record.id, len(index))
        return len(index)

    async def _discard_page_data(self, page_id: str) -> None:
        try:
            await self.backend.remove([page_data_key(page_id)])
        except Exception as e:
            logger.error("could not remove page data for %s after index write failure: %s", page_id, e)

    async def load(self, page_id: str) -> Optional[CaptureRecord]:
        """读取整页记录；缺失或损坏时返回 None。"""
        try:
            raw = await self.backend.get(page_data_key(page_id))
        except Exception as e:
            raise StoreError(f"Failed to read page data for {page_id}: {e}", original=e) from e
        if raw is None:
            return None
        try:
            return CaptureRecord.model_validate(raw)
        except ValidationError as e:
            logger.warning("page data for %s is malformed: %s", page_id, e)
            return None

    async def usage_bytes(self) -> float:
        total = 0.0
        for e in await self.entries():
            total += (e.est_screenshot_size or 0) + (e.est_text_content_size or 0)
        return total

    async def usage_mb(self) -> float:
        return round(await self.usage_bytes() / (1024 * 1024), 2)

    async def reset(self) -> int:
        """删除所有整页数据键并清空索引；返回被清除的页面数。"""
        index = await self._raw_index()
        keys = [page_data_key(str(item.get("id"))) for item in index if isinstance(item, dict) and item.get("id")]
        try:
            if keys:
                await self.backend.remove(keys)
            await self.backend.set(CAPTURED_PAGES_INDEX_KEY, [])
        except Exception as e:
            raise StoreError(f"Failed to reset captures: {e}", original=e) from e
        logger.info("reset %d captured pages", len(index))
        return len(index)
