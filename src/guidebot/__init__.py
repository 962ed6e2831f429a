"""GuideBot radiology report retrieval service."""

__version__ = "0.1.0"
