"""Course enrollment allocation and schedule-change workflow engine."""

__version__ = "0.1.0"
