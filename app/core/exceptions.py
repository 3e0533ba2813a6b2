"""
Application-level exception types.

Everything the node pipeline raises on purpose derives from `AppError`.
Collaborator failures share the `CollaboratorError` base so the metrics
resolver can absorb them with a single except clause.
"""

from __future__ import annotations


class AppError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        self.detail = detail or message
        super().__init__(message)


class ValidationError(AppError):
    """Raised when a request is rejected before any node row exists."""


class ConfigurationError(AppError):
    """Raised when required configuration is missing or invalid."""


class PipelineFailure(AppError):
    """Unexpected failure inside a generation stage; the node is finalized as `error`."""

    def __init__(self, message: str, *, stage: str, detail: str | None = None) -> None:
        super().__init__(message, detail=detail)
        self.stage = stage


class NodeStateError(AppError):
    """Raised when a node that already left `generating` is asked to transition again."""


class EntityNotFoundError(AppError):
    """Raised when a database entity cannot be found."""

    def __init__(self, entity_type: str, entity_id: object) -> None:
        super().__init__(
            f"{entity_type} not found: {entity_id}",
            detail=f"{entity_type} not found",
        )
        self.entity_type = entity_type
        self.entity_id = entity_id


class CollaboratorError(AppError):
    """Base for failures reported by an external collaborator."""

    def __init__(self, message: str, *, collaborator: str, detail: str | None = None) -> None:
        super().__init__(message, detail=detail)
        self.collaborator = collaborator


class CollaboratorUnavailable(CollaboratorError):
    """Network failure, timeout, 5xx, or retries exhausted."""


class LookupNotFoundError(CollaboratorError):
    """The collaborator answered but had no match for the query."""


class NarrativeParseError(CollaboratorError):
    """The narrative generator returned malformed or incomplete JSON."""


class ClassificationError(CollaboratorError):
    """Free-text choice could not be mapped to structured dimensions."""
