"""R Notebook archive and chunk-output service."""

__version__ = "0.1.0"
