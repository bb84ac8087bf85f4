"""roster-doctor: validate, search and configure client/worker/task sheets."""

__version__ = "0.3.0"
