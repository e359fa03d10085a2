"""Browser package initializer.

Playwright bindings for the capture pipeline: session factory (env.py),
CDP screenshot channel (cdp.py) and the in-page segment agent (page_agent.py).
"""
