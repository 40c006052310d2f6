"""
Core harness: shutdown coordination, workers, worker pool, driver and
verification engine.

Only the dependency-free pieces are re-exported here; import the driver and
verification engine from their modules.
"""

from .errors import (
    ConnectionSetupError,
    ConsistencyViolation,
    DrainError,
    HarnessError,
    SetupError,
    StatementError,
    StressBenchError,
)
from .shutdown import ShutdownSignal, ShutdownToken

__all__ = [
    "ConnectionSetupError",
    "ConsistencyViolation",
    "DrainError",
    "HarnessError",
    "SetupError",
    "ShutdownSignal",
    "ShutdownToken",
    "StatementError",
    "StressBenchError",
]
