"""Service layer for the workboard API."""

from .workspace import Workspace, get_workspace

__all__ = ["Workspace", "get_workspace"]
