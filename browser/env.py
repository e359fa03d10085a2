"""
Playwright-backed CaptureEnv used to capture marker segments from live pages.

Methods provided are intentionally minimal:
  - current_url() -> str
  - goto(url, *, wait_until=..., timeout_ms=None) -> None
  - document() -> PageDocument        (segment scanner provider)
  - channel() -> PlaywrightChannel    (CDP screenshot channel)
  - capture(*, store=None, timeout=None) -> CaptureOutcome

Usage:
  from browser.env import make_env
  async with make_env(url, config=cfg) as env:
      outcome = await env.capture(store=store)
"""

from __future__ import annotations

import asyncio
import json as _json
import logging
import urllib.request as _urllib_request
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator, Optional

from playwright.async_api import async_playwright

from capture.config import CaptureConfig
from capture.orchestrator import CaptureOutcome, capture_page

from .cdp import PlaywrightChannel
from .page_agent import PageDocument

if TYPE_CHECKING:  # pragma: no cover
    from flow.store import CaptureStore

logger = logging.getLogger(__name__)

CDP_BACKENDS = {"cdp", "remote_cdp"}


class CaptureEnv:
    def __init__(self, page) -> None:
        self._page = page

    @property
    def page(self):
        return self._page

    def current_url(self) -> str:
        try:
            return self._page.url or ""
        except Exception:
            return ""

    async def goto(self, url: str, *, wait_until: str = "load", timeout_ms: Optional[int] = None) -> None:
        await self._page.goto(url, wait_until=wait_until, timeout=timeout_ms)

    def document(self) -> PageDocument:
        return PageDocument(self._page)

    def channel(self) -> PlaywrightChannel:
        return PlaywrightChannel()

    async def capture(
        self,
        *,
        store: Optional["CaptureStore"] = None,
        timeout: Optional[float] = None,
    ) -> CaptureOutcome:
        document = self.document()
        return await capture_page(
            document,
            self.channel(),
            self._page,
            self.current_url(),
            store=store,
            timeout=timeout,
            device_pixel_ratio=await document.device_pixel_ratio(),
        )


def _resolve_cdp_ws_url(endpoint: str) -> str:
    """把 LQA_PLAYWRIGHT_CDP_URL 规范为 connect_over_cdp 可用的地址。

    ws:// / wss:// 原样返回；裸 host:port 补 ws://；
    http(s):// 端点查询 /json/version 取 webSocketDebuggerUrl，查询失败时原样返回。
    """
    ep = (endpoint or "").strip()
    scheme = ep.split("://", 1)[0].lower() if "://" in ep else ""
    if scheme in ("ws", "wss"):
        return ep
    if scheme not in ("http", "https"):
        return f"ws://{ep}"
    version_url = f"{ep.rstrip('/')}/json/version"
    try:
        with _urllib_request.urlopen(version_url, timeout=3.0) as resp:
            info = _json.loads(resp.read().decode("utf-8") or "{}")
    except (OSError, ValueError) as e:
        logger.warning("could not query %s, using endpoint as-is: %s", version_url, e)
        return ep
    ws_url = str(info.get("webSocketDebuggerUrl") or "").strip()
    return ws_url or ep


@asynccontextmanager
async def make_env(
    url: Optional[str] = None,
    *,
    config: Optional[CaptureConfig] = None,
    default_timeout_ms: Optional[int] = None,
    auto_close: bool = True,
) -> AsyncIterator[CaptureEnv]:
    """Async context manager creating a CaptureEnv.

    backend=local（默认）：本地 launch Chromium，每次新建 context/page；
    backend=cdp：通过 connect_over_cdp 连接到已经运行的 Chrome，优先复用其第一个
    context/page，这样采集的是“当前界面”；退出时不关闭远程浏览器。
    """
    cfg = config or CaptureConfig.from_env()
    use_cdp = cfg.backend in CDP_BACKENDS and bool(cfg.cdp_url)
    async with async_playwright() as pw:
        if use_cdp:
            ws_url = await asyncio.to_thread(_resolve_cdp_ws_url, cfg.cdp_url or "")
            logger.info("connecting over CDP: %s", ws_url)
            browser = await pw.chromium.connect_over_cdp(ws_url)
        else:
            browser = await pw.chromium.launch(headless=cfg.headless)

        if use_cdp and browser.contexts:
            context = browser.contexts[0]
        else:
            context = await browser.new_context()
        if use_cdp and context.pages:
            page = context.pages[0]
        else:
            page = await context.new_page()
        if isinstance(default_timeout_ms, int) and default_timeout_ms > 0:
            page.set_default_timeout(int(default_timeout_ms))
        if url:
            await page.goto(url, wait_until=cfg.nav_wait_until)
        try:
            yield CaptureEnv(page)
        finally:
            if auto_close and not use_cdp:
                try:
                    await context.close()
                except Exception as e:
                    logger.debug("context close failed: %s", e)
                try:
                    await browser.close()
                except Exception as e:
                    logger.debug("browser close failed: %s", e)
