"""Custom exceptions for the salesflow application."""

from __future__ import annotations

from typing import Any


class SalesflowException(Exception):
    """Base exception for salesflow application."""

    pass


class ValidationError(SalesflowException):
    """Raised when validation fails."""

    pass


class NotFoundError(SalesflowException):
    """Raised when a resource is not found."""

    pass


class DatabaseError(SalesflowException):
    """Raised when a database operation fails."""

    pass


class ServiceError(SalesflowException):
    """Raised when a service operation fails."""

    pass


class CompletionError(ServiceError):
    """Raised when the completion API cannot produce a response."""

    pass


class MessagingError(ServiceError):
    """Raised when the messaging API rejects or drops a request."""

    pass


class ConfigurationError(SalesflowException):
    """Raised when configuration is invalid."""

    pass


class AuthenticationError(SalesflowException):
    """Raised when authentication fails."""

    pass


class LeadBusyError(SalesflowException):
    """Raised when another worker holds the lock for the same lead."""

    def __init__(self, phone: str) -> None:
        super().__init__(f"lead {phone} is being processed by another worker")
        self.phone = phone


class AgentDispatchError(SalesflowException):
    """Raised when agent dispatch fails after a fallback reply was prepared.

    ``fallback`` is the reply the caller should still deliver to the user and
    ``original`` is the exception that interrupted dispatch.
    """

    def __init__(self, fallback: Any, original: BaseException) -> None:
        super().__init__(f"agent dispatch failed: {original}")
        self.fallback = fallback
        self.original = original
