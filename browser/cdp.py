"""
Chrome DevTools Protocol channel backed by Playwright's CDPSession.

Implements capture.screenshot.InstrumentationChannel: attach opens a CDP
session bound to one page, send issues a protocol command, detach closes it.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class PlaywrightChannel:
    async def attach(self, target) -> Any:
        # target is a playwright.async_api.Page
        return await target.context.new_cdp_session(target)

    async def send(self, session, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await session.send(method, params or {})

    async def detach(self, session) -> None:
        await session.detach()
