"""
flow.cli

命令行入口：采集页面、查看/清空已采集页面、导出 .lqaboss 流程文件、生成片段框预览图。

典型用法（在仓库根目录）：

  # 本地启动 Chromium，依次采集两个页面
  python -m flow.cli capture --url https://example.com/a --url https://example.com/b

  # 连接到已打开的 Chrome（--remote-debugging-port=9222），采集其当前页面
  LQA_BROWSER_BACKEND=cdp LQA_PLAYWRIGHT_CDP_URL=http://localhost:9222 python -m flow.cli capture

  # 查看与导出（导出成功后默认清空已采集页面，--keep 保留）
  python -m flow.cli list
  python -m flow.cli export --name "checkout flow" --out-dir workspace/flows

说明：
  - 存储目录、浏览器后端、超时等默认值来自 capture.config.CaptureConfig（环境变量/.env）；
  - 返回码：0 成功；1 失败；2 页面上没有标记片段（capture）或没有可导出的页面（export）。
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from typing import List, Optional

from capture.config import CaptureConfig
from capture.errors import EmptyFlow, LQACaptureError
from capture.orchestrator import CaptureStatus
from capture.overlay import render_overlay

from .packager import build_flow_archive, write_flow_file
from .store import CaptureStore, JsonDirBackend

logger = logging.getLogger("flow.cli")


def _say(msg: str, *, err: bool = False) -> None:
    print(f"[lqa.cli] {msg}", file=sys.stderr if err else sys.stdout)


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(
        description="Capture marker-annotated pages for LQA review and export them as a .lqaboss flow.",
    )
    ap.add_argument("--store-dir", default=None, help="Capture store directory (default: LQA_STORE_DIR or workspace/captures)")
    ap.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("capture", help="Capture one or more pages into the store")
    p.add_argument("--url", action="append", default=[], help="Page URL to open and capture (repeatable). "
                   "Omit with the cdp backend to capture the browser's current page.")
    p.add_argument("--timeout-ms", type=int, default=None, help="Screenshot command timeout in ms (default: LQA_CAPTURE_TIMEOUT_MS)")
    p.add_argument("--no-headless", dest="headless", action="store_false", default=None, help="Run the local browser headed")

    sub.add_parser("list", help="List captured pages and estimated memory usage")

    p = sub.add_parser("export", help="Package captured pages into a .lqaboss flow file")
    p.add_argument("--name", default=None, help="Flow name (default: lqa_flow_YYYYMMDD)")
    p.add_argument("--out-dir", default=None, help="Output directory (default: LQA_OUT_DIR or workspace/flows)")
    p.add_argument("--keep", action="store_true", help="Keep captured pages after a successful export")

    sub.add_parser("reset", help="Delete all captured pages")

    p = sub.add_parser("overlay", help="Draw segment boxes over a captured page's screenshot")
    p.add_argument("--page-id", required=True, help="Captured page id (see `list`)")
    p.add_argument("--out", required=True, help="Output PNG path")
    p.add_argument("--scale", type=float, default=None,
                   help="Device pixel ratio of the screenshot (default: the ratio recorded at capture time)")
    p.add_argument("--label", action="store_true", help="Draw segment ordinals")

    return ap.parse_args(argv)


async def _cmd_capture(args: argparse.Namespace, cfg: CaptureConfig, store: CaptureStore) -> int:
    from browser.env import make_env

    if args.headless is not None:
        cfg.headless = args.headless
    timeout = cfg.capture_timeout
    if args.timeout_ms is not None:
        timeout = args.timeout_ms / 1000.0 if args.timeout_ms > 0 else None
    urls: List[Optional[str]] = list(args.url) or [None]
    rc = 0
    async with make_env(config=cfg) as env:
        for url in urls:
            if url:
                try:
                    await env.goto(url, wait_until=cfg.nav_wait_until)
                except Exception as e:
                    _say(f"ERROR: navigation to {url} failed: {e}", err=True)
                    rc = 1
                    continue
            outcome = await env.capture(store=store, timeout=timeout)
            _say(f"{outcome.url}: {outcome.message}", err=not outcome.ok)
            for w in outcome.warnings:
                logger.debug("warning: %s", w)
            if outcome.status is CaptureStatus.FAILED:
                rc = 1
            elif outcome.status is CaptureStatus.NO_CONTENT and rc == 0:
                rc = 2
    return rc


async def _cmd_list(store: CaptureStore) -> int:
    entries = await store.entries()
    for i, e in enumerate(entries, start=1):
        _say(f"{i:3d}  {e.id}  {e.timestamp}  {e.url}")
    _say(f"pages={len(entries)} memory={await store.usage_mb():.2f} MB")
    return 0


async def _cmd_export(args: argparse.Namespace, cfg: CaptureConfig, store: CaptureStore) -> int:
    try:
        archive = await build_flow_archive(store, args.name)
    except EmptyFlow as e:
        _say(f"ERROR: {e.message}", err=True)
        return 2
    out_dir = args.out_dir or cfg.out_dir
    try:
        path = write_flow_file(archive, out_dir)
    except OSError as e:
        _say(f"ERROR: could not write flow file to {out_dir}: {e}", err=True)
        return 1
    _say(f"Flow saved: {path} ({archive.page_count} pages, {len(archive.skipped)} skipped)")
    if not args.keep:
        n = await store.reset()
        _say(f"Reset {n} captured pages after export.")
    return 0


async def _cmd_overlay(args: argparse.Namespace, store: CaptureStore) -> int:
    record = await store.load(args.page_id)
    if record is None:
        _say(f"ERROR: no page data for {args.page_id}", err=True)
        return 1
    scale = args.scale if args.scale else record.device_pixel_ratio
    png = render_overlay(record.screenshot, record.segments, scale=scale, label=args.label)
    try:
        os.makedirs(os.path.dirname(os.path.abspath(args.out)), exist_ok=True)
        with open(args.out, "wb") as f:
            f.write(png)
    except OSError as e:
        _say(f"ERROR: could not write overlay to {args.out}: {e}", err=True)
        return 1
    _say(f"Overlay written: {args.out} ({len(record.segments)} segments)")
    return 0


async def _run(args: argparse.Namespace) -> int:
    cfg = CaptureConfig.from_env()
    store = CaptureStore(JsonDirBackend(args.store_dir or cfg.store_dir))
    if args.command == "capture":
        return await _cmd_capture(args, cfg, store)
    if args.command == "list":
        return await _cmd_list(store)
    if args.command == "export":
        return await _cmd_export(args, cfg, store)
    if args.command == "reset":
        n = await store.reset()
        _say(f"All captures have been reset ({n} pages).")
        return 0
    if args.command == "overlay":
        return await _cmd_overlay(args, store)
    _say(f"ERROR: unknown command {args.command}", err=True)
    return 1


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except LQACaptureError as e:
        _say(f"ERROR: {e}", err=True)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
