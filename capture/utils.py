"""
capture.utils
通用工具函数：页面 id/时间戳/流程文件名/数据 URL/JSON 写入等。
"""

from __future__ import annotations

import json
import os
import random
import re
import string
import time
from datetime import datetime, timezone
from typing import Any, Optional

from .constants import DEFAULT_FLOW_PREFIX, FLOW_FILE_EXTENSION, PRIVILEGED_URL_PREFIXES

_BASE36 = string.digits + string.ascii_lowercase


def new_page_id(now_ms: Optional[int] = None) -> str:
    """生成页面 id：page_<毫秒时间戳>_<5 位 base36 随机串>。"""
    ms = int(time.time() * 1000) if now_ms is None else int(now_ms)
    suffix = "".join(random.choice(_BASE36) for _ in range(5))
    return f"page_{ms}_{suffix}"


def iso_timestamp(dt: Optional[datetime] = None) -> str:
    """返回 UTC ISO-8601 时间戳，毫秒精度，以 Z 结尾。"""
    dt = dt or datetime.now(timezone.utc)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def default_flow_name(dt: Optional[datetime] = None) -> str:
    """默认流程名：lqa_flow_YYYYMMDD。"""
    dt = dt or datetime.now(timezone.utc)
    return f"{DEFAULT_FLOW_PREFIX}{dt.strftime('%Y%m%d')}"


def sanitize_flow_name(name: str) -> str:
    """将流程名清洗为文件系统安全的名字（非 [a-z0-9_.-] 一律替换为 _）。"""
    return re.sub(r"[^a-z0-9_.-]", "_", name, flags=re.IGNORECASE)


def flow_filename(name: str) -> str:
    return f"{sanitize_flow_name(name)}{FLOW_FILE_EXTENSION}"


def strip_data_url(data_url: str) -> str:
    """去掉 data:...;base64, 前缀；无逗号时原样返回。"""
    return data_url[data_url.find(",") + 1:]


def is_privileged_url(url: Optional[str]) -> bool:
    """浏览器内部页面/空白页不允许附加调试器。"""
    u = (url or "").strip().lower()
    return any(u.startswith(p) for p in PRIVILEGED_URL_PREFIXES)


def ensure_unique_path(path: str) -> str:
    """若文件已存在则在扩展名前追加 -1/-2 后缀。"""
    if not os.path.exists(path):
        return path
    root, ext = os.path.splitext(path)
    i = 1
    while True:
        alt = f"{root}-{i}{ext}"
        if not os.path.exists(alt):
            return alt
        i += 1


def write_json(path: str, obj: Any) -> None:
    """以 UTF-8 与缩进写入 JSON 文件（先写临时文件再替换）。"""
    tmp = f"{path}.tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(obj, f, ensure_ascii=False, indent=2)
    os.replace(tmp, path)
