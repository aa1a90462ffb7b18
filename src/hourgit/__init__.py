"""Time tracking from git branch checkouts, schedules and manual logs."""

__version__ = "0.1.0"
