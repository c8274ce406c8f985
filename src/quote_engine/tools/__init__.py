"""
Quote engine tools for browser automation.
"""

from .automation_client import AutomationClient, parse_sse_line

__all__ = ["AutomationClient", "parse_sse_line"]
