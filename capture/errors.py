"""
capture.errors
采集流程的异常类型定义。

LQACaptureError 是统一的错误封装（code/stage/message/original），
其余类型按阶段细分：解码、扫描、调试器附加/截图/分离、打包与存储。
DetachWarning 只会被记录到 warnings 列表，不会被抛出。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(eq=False)
class LQACaptureError(Exception):
    """采集错误基类。

    message: 人类可读的错误信息
    code: 错误码（如 INVALID_LENGTH/ATTACH_FAILED 等）
    stage: 出错阶段（decode/scan/attach/capture/detach/package/store）
    original: 可选，原始异常对象
    """

    message: str
    code: str = "CAPTURE_ERROR"
    stage: str = "capture"
    original: Optional[BaseException] = None

    def __str__(self) -> str:
        base = f"[{self.code}@{self.stage}] {self.message}"
        if self.original is not None and str(self.original) not in self.message:
            base += f" ({type(self.original).__name__}: {self.original})"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """warnings 列表中的记录形式。"""
        out: Dict[str, Any] = {"code": self.code, "stage": self.stage, "message": self.message}
        if self.original is not None:
            out["error"] = f"{type(self.original).__name__}: {self.original}"
        return out


@dataclass(eq=False)
class CodecError(LQACaptureError):
    code: str = "CODEC_ERROR"
    stage: str = "decode"


@dataclass(eq=False)
class InvalidLength(CodecError):
    code: str = "INVALID_LENGTH"


@dataclass(eq=False)
class InvalidNibble(CodecError):
    code: str = "INVALID_NIBBLE"


@dataclass(eq=False)
class ScanError(LQACaptureError):
    code: str = "SCAN_ERROR"
    stage: str = "scan"


@dataclass(eq=False)
class AttachFailed(LQACaptureError):
    code: str = "ATTACH_FAILED"
    stage: str = "attach"


@dataclass(eq=False)
class CaptureFailed(LQACaptureError):
    code: str = "CAPTURE_FAILED"
    stage: str = "capture"


@dataclass(eq=False)
class DetachWarning(LQACaptureError):
    code: str = "DETACH_FAILED"
    stage: str = "detach"


@dataclass(eq=False)
class EmptyFlow(LQACaptureError):
    code: str = "EMPTY_FLOW"
    stage: str = "package"


@dataclass(eq=False)
class StoreError(LQACaptureError):
    code: str = "STORE_ERROR"
    stage: str = "store"
