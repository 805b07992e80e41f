"""Sequential shell task orchestrator with resumable status and live streaming."""

__version__ = "1.0.0"
