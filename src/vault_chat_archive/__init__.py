"""Save and reload multi-modal AI conversations as Markdown vault documents."""

__version__ = "0.1.0"
