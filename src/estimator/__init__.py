"""
Package marker for source code under `src.estimator`.
It groups the persona-conditioned cost-of-living estimation engine under a stable import path.
Most functionality lives in the sibling modules; this file intentionally stays lightweight.
"""
