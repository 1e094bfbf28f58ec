"""Authentication service for the task management application."""

__version__ = "0.1.0"
