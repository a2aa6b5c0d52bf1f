"""Exception types raised inside a scan."""

from __future__ import annotations


class ArchgraphError(Exception):
    """Base class for archgraph errors."""


class ParseFailure(ArchgraphError):
    """A single file could not be turned into facts. Never fatal for a scan."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class CycleDetectionTimeout(ArchgraphError):
    """The cycle search exhausted its step budget."""

    def __init__(self, steps: int) -> None:
        super().__init__(f"cycle detection budget exhausted after {steps} steps")
        self.steps = steps


class ScanCancelled(ArchgraphError):
    """The scan was cancelled through its cancellation token."""


class ScanFailure(ArchgraphError):
    """Unrecoverable scan-level failure (resource exhaustion, worker crash)."""
