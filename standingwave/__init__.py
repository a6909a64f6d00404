"""Standing Wave runtime core package."""

__all__ = [
    "config",
    "errors",
    "runtime",
]
