"""
Command Center

Issue tracking with Claude execution automation, Slack notifications
and realtime updates.
"""

import importlib.metadata

__version__ = importlib.metadata.version("command-center")

from .core.broadcaster import RealtimeBroadcaster
from .core.execution_engine import ExecutionEngine
from .core.orchestrator import StatusTransitionOrchestrator
from .tracker.enums import ExecutionStatus, IssuePriority, IssueStatus, IssueType

__all__ = [
    "ExecutionEngine",
    "ExecutionStatus",
    "IssuePriority",
    "IssueStatus",
    "IssueType",
    "RealtimeBroadcaster",
    "StatusTransitionOrchestrator",
]
