"""Workboard: PRD and Skill metadata store with a kanban workflow engine."""

__version__ = "0.1.0"
