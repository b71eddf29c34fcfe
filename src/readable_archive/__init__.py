"""Content extraction and offline archival of web pages."""

__version__ = "0.1.0"
