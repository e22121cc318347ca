"""Update graphs, built-in channels, label helpers and version strings for SpiceDB clusters."""

__version__ = "0.1.0"
__all__ = ["channels", "graph", "memory", "metadata", "version"]