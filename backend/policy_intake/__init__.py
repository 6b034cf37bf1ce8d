"""Insurance policy intake: extraction, reconciliation and persistence."""

__version__ = "0.1.0"
