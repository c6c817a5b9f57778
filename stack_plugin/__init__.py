"""
.. include:: ../README.md
"""

__all__ = [
    "context",
    "resolver",
    "template",
    "manifest",
    "emitter",
    "lifecycle",
    "config",
    "exceptions",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
