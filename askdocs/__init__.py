"""Ask Docs: retrieval-augmented question answering over plain-text documents."""

__version__ = "1.1.0"
