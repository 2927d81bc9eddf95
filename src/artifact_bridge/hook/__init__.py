"""
CLI-side hook process.

Started once per tool call by the CLI host:
- invocation: parse the stdin document or the environment
- handlers: per-tool reactions routed on (hook event, tool name)
- main: entry point, logging, signals and exit codes
"""

from __future__ import annotations
