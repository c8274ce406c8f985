"""
Quote Workflow Engine.

Aggregates auto-insurance quotes by driving a browser automation agent
through multi-step, independently retried provider workflows.
"""

__version__ = "1.0.0"
