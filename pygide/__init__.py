"""PyGide: a project-aware command execution engine with a small Qt host."""

__version__ = "0.1.0"
