"""French flashcard content: persistent store, merge/validation, cache and practice selection."""

__version__ = "0.1.0"
