"""
tm-local runs event-driven components on the local host.

Components declared in a broker context run as containers and exchange events
through a local broker that routes them according to its triggers.
"""

__all__ = [
    "manifest",
    "schema",
    "secret",
    "store",
    "broker",
    "orchestrator",
    "runtime",
    "exceptions",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
