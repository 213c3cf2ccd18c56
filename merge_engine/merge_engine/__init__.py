"""Schema-agnostic entity reconciliation engine."""

__version__ = "0.1.0"
