"""
capture.marker_codec
将字节串编码为 U+FE00..U+FE0F 不可见码点序列（及其逆过程）。

每个字节拆成两个半字节（高位在前），各自加上 ENCODING_OFFSET。
decode 要么返回完整字节串，要么抛出 InvalidLength / InvalidNibble，不会部分成功。
"""

from __future__ import annotations

import json
from typing import Any, Dict

from .constants import DECODING_ERROR_KEY, ENCODING_OFFSET
from .errors import CodecError, InvalidLength, InvalidNibble


def encode(data: bytes) -> str:
    """Map each byte to two non-printing code points (high nibble, low nibble)."""
    out = []
    for b in bytes(data):
        out.append(chr(ENCODING_OFFSET + (b >> 4)))
        out.append(chr(ENCODING_OFFSET + (b & 0x0F)))
    return "".join(out)


def decode(encoded: str) -> bytes:
    """Inverse of encode(); raises CodecError subclasses on malformed input."""
    if len(encoded) % 2 != 0:
        raise InvalidLength(f"Invalid fe00 encoded input length: {len(encoded)}")
    buf = bytearray(len(encoded) // 2)
    for i in range(0, len(encoded), 2):
        high = ord(encoded[i]) - ENCODING_OFFSET
        low = ord(encoded[i + 1]) - ENCODING_OFFSET
        if not (0 <= high <= 15 and 0 <= low <= 15):
            raise InvalidNibble(f"Invalid char code in fe00 encoded input at offset {i}")
        buf[i // 2] = (high << 4) | low
    return bytes(buf)


def encode_metadata(metadata: Dict[str, Any]) -> str:
    """把元数据对象序列化为 JSON 再编码，便于测试与页面端生成标记文本。"""
    return encode(json.dumps(metadata, ensure_ascii=False, separators=(",", ":")).encode("utf-8"))


def decode_metadata(encoded: str) -> Dict[str, Any]:
    """解码标记中的元数据为 dict。

    空串/空白 → {}；任何失败（长度/半字节/UTF-8/JSON/非对象）→ {"decodingError": 原因}。
    本函数不抛异常。
    """
    try:
        text = decode(encoded).decode("utf-8")
    except CodecError as e:
        return {DECODING_ERROR_KEY: e.message}
    except UnicodeDecodeError as e:
        return {DECODING_ERROR_KEY: f"invalid utf-8 in metadata: {e.reason}"}
    if not text.strip():
        return {}
    try:
        obj = json.loads(text)
    except ValueError as e:
        return {DECODING_ERROR_KEY: str(e)}
    if not isinstance(obj, dict):
        return {DECODING_ERROR_KEY: f"metadata is not an object: {type(obj).__name__}"}
    return obj
