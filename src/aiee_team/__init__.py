"""aiee-team: quality-gated implement / review / gate workflow orchestrator."""

__version__ = "0.1.0"
