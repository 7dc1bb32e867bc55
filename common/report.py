"""Reporting abstractions for ping-testkit.

Contains:
- Report ABC: Base class for all reports
- format_ms: Format a duration in seconds as milliseconds
"""

from abc import ABC, abstractmethod


def format_ms(seconds: float) -> str:
    """Format a duration in seconds as milliseconds, e.g. 0.0123 -> "12.300"."""
    return f"{seconds * 1000:.3f}"


class Report(ABC):
    """Abstract base class for ping reports."""

    @abstractmethod
    def print(self) -> None:
        """Print the report to stdout."""
        pass

    @abstractmethod
    def success(self) -> bool:
        """Return True if the report indicates success."""
        pass
