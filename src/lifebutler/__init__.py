"""lifebutler: offline retrieval, routing and advice over personal life records."""

__version__ = "0.1.0"
