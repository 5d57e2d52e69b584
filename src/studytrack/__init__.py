"""Study session tracking with timestamp-based timing, reliable saves and streaks."""

__version__ = "0.1.0"

__all__ = ["__version__"]
