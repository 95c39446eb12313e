"""Output formatting for refresh results."""

from .formatters import JSONFormatter, OutputFormatter, TableFormatter

__all__ = ["OutputFormatter", "JSONFormatter", "TableFormatter"]
