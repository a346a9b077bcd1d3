"""
Package marker for source code under `src.common`.
It groups settings, logging, and database helpers shared by every entrypoint.
Most functionality lives in the sibling modules; this file intentionally stays lightweight.
"""
