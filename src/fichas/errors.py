"""Base exception for the fichas engine."""


class FichasError(Exception):
    """Base class for every error raised by fichas."""
    pass
