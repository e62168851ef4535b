"""Build, archive and deploy helpers for Apple mobile apps, with template processing and subprocess wrappers."""

__version__ = "0.1.0"