"""Base result types for localgoose operations.

Provides a consistent pattern for returning operation results. Expected
states (no document matched, model not registered) are returned as results,
while system errors (validation failure, storage crash) raise exceptions.
"""

from typing import Any, Final, Literal, Self

from pydantic import BaseModel, Field


class StatusDetail(BaseModel):
    """Structured status information for operation results.

    Attributes:
        code: Machine-readable status code (e.g., "not_found", "no_match").
        message: Human-readable status description.
        context: Additional diagnostic data (safe to log/serialize).
    """

    code: str = Field(description="Status code: 'not_found', 'no_match', etc.")
    message: str = Field(description="Human-readable status description")
    context: dict[str, Any] = Field(default_factory=dict, description="Diagnostic context")


class BaseResult(BaseModel):
    """Base class for all localgoose operation results.

    Pattern:
    - status="success" -> operation succeeded, specific fields populated
    - status="error" -> expected failure, detail contains the reason

    Example:
        >>> result = await User.update_one({"name": "a"}, {"age": 3})
        >>> if result.modified_count == 0:
        ...     print(result.detail.code)
    """

    status: Literal["success", "error"] = Field(default="success", description="Operation status")
    detail: StatusDetail | None = Field(
        default=None, description="Status details (present for error or informational status)"
    )

    model_config = {"extra": "forbid", "arbitrary_types_allowed": True}

    def is_ok(self) -> bool:
        """Check if operation succeeded."""
        return self.status == "success"

    def is_error(self) -> bool:
        """Check if operation failed with expected error."""
        return self.status == "error"

    @classmethod
    def success(cls, *, detail: StatusDetail | None = None, **kwargs: Any) -> Self:
        """Factory method for successful result.

        Args:
            detail: Optional informational status details.
            **kwargs: Subclass-specific fields.

        Returns:
            Result instance with status="success".
        """
        return cls(status="success", detail=detail, **kwargs)

    @classmethod
    def fail(cls, detail: StatusDetail, **kwargs: Any) -> Self:
        """Factory method for expected failure result.

        Args:
            detail: Required status details describing the failure.
            **kwargs: Subclass-specific fields (use defaults).

        Returns:
            Result instance with status="error".
        """
        return cls(status="error", detail=detail, **kwargs)


# =============================================================================
# STATUS CODE REGISTRY
# =============================================================================


class StatusCode:
    """Centralized registry of status codes used across localgoose."""

    # -------------------------------------------------------------------------
    # Common
    # -------------------------------------------------------------------------
    INVALID: Final = "invalid"
    """[Common] Invalid parameter, name, or configuration."""

    NOT_FOUND: Final = "not_found"
    """[Common] Requested resource not found (expected state, not error)."""

    # -------------------------------------------------------------------------
    # Model (writes)
    # -------------------------------------------------------------------------
    NO_MATCH: Final = "no_match"
    """[Model] No stored record matched the filter."""

    # -------------------------------------------------------------------------
    # Connection (model registry)
    # -------------------------------------------------------------------------
    ALREADY_EXISTS: Final = "already_exists"
    """[Connection] A different schema is already registered under that model name."""

    DUPLICATE: Final = "duplicate"
    """[Connection] The same schema was registered twice under one name (skipped)."""


__all__ = ["BaseResult", "StatusDetail", "StatusCode"]
