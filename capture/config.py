"""
capture.config

集中管理浏览器连接、存储目录与超时等基础配置。
从环境变量读取（先尽力加载 .env），不覆盖已存在于 os.environ 的变量。
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

NAV_WAIT_CHOICES = ("domcontentloaded", "load", "networkidle", "commit")


def _load_dotenv_if_needed() -> None:
    """LQA_ENV_FILE 指定路径优先，其次是 CWD/.env。"""
    env_file = os.getenv("LQA_ENV_FILE", "").strip()
    if env_file and os.path.exists(env_file):
        load_dotenv(env_file, override=False)
    cwd_env = os.path.join(os.getcwd(), ".env")
    if os.path.exists(cwd_env):
        load_dotenv(cwd_env, override=False)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


@dataclass
class CaptureConfig:
    """采集配置（从环境变量读取，供 browser.env 与 flow.cli 使用）。"""

    backend: str = "local"
    cdp_url: Optional[str] = None
    headless: bool = True
    store_dir: str = "workspace/captures"
    out_dir: str = "workspace/flows"
    capture_timeout_ms: int = 30000
    nav_wait_until: str = "load"

    @property
    def capture_timeout(self) -> Optional[float]:
        """秒；<=0 表示不设超时。"""
        return self.capture_timeout_ms / 1000.0 if self.capture_timeout_ms > 0 else None

    @classmethod
    def from_env(cls) -> "CaptureConfig":
        """从环境变量构造配置，给出合理缺省值。"""
        _load_dotenv_if_needed()
        backend = os.getenv("LQA_BROWSER_BACKEND", "local").strip().lower() or "local"
        cdp_url = os.getenv("LQA_PLAYWRIGHT_CDP_URL", "").strip() or None
        nav = os.getenv("LQA_NAV_WAIT_UNTIL", "load").strip().lower()
        if nav not in NAV_WAIT_CHOICES:
            nav = "load"
        return cls(
            backend=backend,
            cdp_url=cdp_url,
            headless=_env_bool("LQA_HEADLESS", True),
            store_dir=os.getenv("LQA_STORE_DIR", "").strip() or "workspace/captures",
            out_dir=os.getenv("LQA_OUT_DIR", "").strip() or "workspace/flows",
            capture_timeout_ms=_env_int("LQA_CAPTURE_TIMEOUT_MS", 30000),
            nav_wait_until=nav,
        )


def get_capture_config() -> CaptureConfig:
    """便捷函数：获取当前环境下的 CaptureConfig。"""
    return CaptureConfig.from_env()
