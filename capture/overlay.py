"""
capture.overlay
在截图上为每个片段画框，便于人工核对片段位置与截图是否对齐。

说明：
    - 片段坐标为 CSS 像素（页面绝对坐标），截图为设备像素，scale 传入 devicePixelRatio；
    - 颜色按片段序号循环，可选在左上角绘制序号标签；
    - 超出画布的框会被裁剪，完全在画布外的框跳过。
"""

from __future__ import annotations

import base64
import io
from typing import Iterable, Tuple, Union

from PIL import Image, ImageDraw, ImageFont

from .types import Segment
from .utils import strip_data_url


def _palette(i: int) -> Tuple[int, int, int]:
    colors = [
        (240,  64,  64), (255, 140,   0), (255, 210,  60),
        ( 64, 200,  80), ( 60, 200, 200), ( 60, 140, 255),
        ( 64,  64, 255), (160,  80, 255), (230,  60, 230),
    ]
    return colors[i % len(colors)]


def _load_image(screenshot: Union[str, bytes]) -> Image.Image:
    if isinstance(screenshot, str):
        screenshot = base64.b64decode(strip_data_url(screenshot))
    return Image.open(io.BytesIO(screenshot)).convert("RGBA")


def render_overlay(
    screenshot: Union[str, bytes],
    segments: Iterable[Segment],
    *,
    scale: float = 1.0,
    line_width: int = 2,
    alpha: int = 0,
    label: bool = False,
) -> bytes:
    """返回叠加了片段框的 PNG 字节。

    screenshot: data URL / 纯 base64 字符串，或 PNG 字节。
    alpha: 0 表示只描边；>0 时在框内叠加半透明色块。
    """
    img = _load_image(screenshot)
    layer = Image.new("RGBA", img.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    font = ImageFont.load_default()
    img_w, img_h = img.size

    for i, seg in enumerate(segments):
        x0 = max(0, int(round(seg.x * scale)))
        y0 = max(0, int(round(seg.y * scale)))
        x1 = min(img_w - 1, int(round((seg.x + seg.width) * scale)))
        y1 = min(img_h - 1, int(round((seg.y + seg.height) * scale)))
        if x1 <= x0 or y1 <= y0:
            continue
        color = _palette(i)
        if alpha > 0:
            draw.rectangle([x0, y0, x1, y1], fill=color + (max(0, min(255, int(alpha))),))
        draw.rectangle([x0, y0, x1, y1], outline=color + (255,), width=max(1, int(line_width)))
        if label:
            draw.text((x0 + 2, max(0, y0 - 12)), str(i + 1), fill=color + (255,), font=font)

    out = Image.alpha_composite(img, layer).convert("RGB")
    buf = io.BytesIO()
    out.save(buf, format="PNG")
    return buf.getvalue()
