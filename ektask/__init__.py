"""ek: a personal task tracker whose tasks form a dependency graph."""

__version__ = "0.3.0"
