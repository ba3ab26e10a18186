"""DisplayData content and analytics services."""

__version__ = "1.0.0"
