"""Capture package initializer.

页面采集流水线：标记编解码、片段扫描、整页截图与单页采集编排。

公开入口：参见 capture.orchestrator.capture_page。
"""
