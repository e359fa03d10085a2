"""
capture.screenshot
通过调试通道（Chrome DevTools Protocol）获取整页 PNG 截图。

流程严格为：附加调试器 → 发送一次 Page.captureScreenshot → 分离调试器。
分离一定会执行（包括截图失败/超时/异常），分离失败只记录为 DetachWarning，
整体结果仅由截图这一步决定。
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

from .constants import PNG_DATA_URL_PREFIX, SCREENSHOT_COMMAND, SCREENSHOT_PARAMS
from .errors import AttachFailed, CaptureFailed, DetachWarning
from .utils import is_privileged_url

logger = logging.getLogger(__name__)


class InstrumentationChannel(Protocol):
    async def attach(self, target: Any) -> Any: ...

    async def send(self, session: Any, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]: ...

    async def detach(self, session: Any) -> None: ...


@asynccontextmanager
async def debugger_session(
    channel: InstrumentationChannel,
    target: Any,
    *,
    warnings: Optional[List[Dict[str, Any]]] = None,
) -> AsyncIterator[Any]:
    """附加调试器并在退出时保证分离（每次成功附加恰好分离一次）。"""
    try:
        session = await channel.attach(target)
    except AttachFailed:
        raise
    except Exception as e:
        raise AttachFailed(f"Failed to attach debugger: {e}", original=e) from e
    logger.debug("debugger attached to %r", target)
    try:
        yield session
    finally:
        try:
            await channel.detach(session)
            logger.debug("debugger detached from %r", target)
        except Exception as e:
            w = DetachWarning(f"Error detaching debugger: {e}", original=e)
            logger.warning("%s", w)
            if warnings is not None:
                warnings.append(w.to_dict())


def _command_error(result: Any) -> Optional[str]:
    if not isinstance(result, dict) or not result.get("error"):
        return None
    err = result["error"]
    if isinstance(err, dict):
        return str(err.get("message") or err)
    return str(err)


async def capture_full_page(
    channel: InstrumentationChannel,
    target: Any,
    *,
    url: Optional[str] = None,
    timeout: Optional[float] = None,
    warnings: Optional[List[Dict[str, Any]]] = None,
) -> str:
    """返回 data:image/png;base64,... 形式的整页截图。

    url: 目标页面地址，浏览器内部页面直接以 AttachFailed 拒绝；
    timeout: 截图命令的超时秒数，超时以 CaptureFailed 结束（仍会分离调试器）。
    """
    if url is not None and is_privileged_url(url):
        raise AttachFailed(f"Cannot capture browser internal or blank pages: {url}")

    async with debugger_session(channel, target, warnings=warnings) as session:
        logger.debug("sending %s", SCREENSHOT_COMMAND)
        try:
            result = await asyncio.wait_for(
                channel.send(session, SCREENSHOT_COMMAND, dict(SCREENSHOT_PARAMS)),
                timeout,
            )
        except asyncio.TimeoutError as e:
            raise CaptureFailed(f"{SCREENSHOT_COMMAND} timed out after {timeout}s", original=e) from e
        except CaptureFailed:
            raise
        except Exception as e:
            raise CaptureFailed(f"{SCREENSHOT_COMMAND} failed: {e}", original=e) from e

        err = _command_error(result)
        if err:
            raise CaptureFailed(f"{SCREENSHOT_COMMAND} failed: {err}")
        data = result.get("data") if isinstance(result, dict) else None
        if not data:
            raise CaptureFailed("Screenshot command returned no data.")
        logger.debug("screenshot data received (%d chars)", len(data))
        return f"{PNG_DATA_URL_PREFIX}{data}"
