"""chatrelay - export chat conversations and compress them into context snapshots."""

__version__ = "0.3.0"
