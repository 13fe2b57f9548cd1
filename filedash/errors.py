"""
Error taxonomy shared by the stores, services and HTTP layer.
"""

from __future__ import annotations


class DashboardError(Exception):
    """Base class for errors the API reports to callers."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(DashboardError):
    """A referenced document, layout, widget, user or file does not exist."""


class ConflictError(DashboardError):
    """A create collided with an existing unique key."""


class ValidationError(DashboardError):
    """A write would violate a structural rule of the preferences document."""

    def __init__(self, rule: str, message: str):
        super().__init__(message)
        self.rule = rule


class InvalidCredentialsError(DashboardError):
    pass


class StorageFault(DashboardError):
    """The persistence layer itself failed (unavailable, timeout, ...)."""
