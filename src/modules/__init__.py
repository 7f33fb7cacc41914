"""Application modules for guardrail evaluation.

Each module is self-contained with its own schemas, protocols and
services, built on the reusable pieces in `src.infrastructure`.
"""
