"""Localgoose - Exception hierarchy.

Custom exceptions for schema validation, casting, population and persistence.

Only SYSTEM or caller errors raise. Expected states (no match on update, model
not registered on lookup) are returned as results, see ``dto/model_dto.py``.
"""

from typing import Any


class LocalgooseError(Exception):
    """Base exception for all localgoose errors."""

    pass


class ValidationError(LocalgooseError):
    """Raised when one or more fields fail validation during create or update.

    Attributes:
        errors: One message per failing field, in schema declaration order.
        model: Optional name of the model the record belongs to.
    """

    def __init__(self, errors: list[str], model: str | None = None):
        """Initialize ValidationError.

        Args:
            errors: Per-field error messages.
            model: Optional model name.
        """
        self.errors = list(errors)
        self.model = model
        super().__init__(", ".join(self.errors))


class CastError(LocalgooseError):
    """Raised when a raw value cannot be coerced to the declared field kind.

    Attributes:
        path: Field path being cast.
        value: The offending value.
        kind: The semantic kind the value was expected to satisfy.
    """

    def __init__(self, path: str, value: Any, kind: str):
        """Initialize CastError.

        Args:
            path: Field path being cast.
            value: The raw value that failed.
            kind: Expected kind name (e.g. "Number").
        """
        self.path = path
        self.value = value
        self.kind = kind
        super().__init__(
            f"Cast to {kind} failed for value {value!r} (type {type(value).__name__}) "
            f"at path '{path}'"
        )


class ReferenceResolutionError(LocalgooseError):
    """Raised (and usually recovered) when a reference cannot be populated.

    Attributes:
        path: The populated path.
        ref: Name of the referenced model, if known.
        reason: Why resolution failed.
    """

    def __init__(self, path: str, ref: str | None = None, reason: str | None = None):
        """Initialize ReferenceResolutionError.

        Args:
            path: The path being populated.
            ref: Referenced model name.
            reason: Optional human-readable reason.
        """
        self.path = path
        self.ref = ref
        self.reason = reason
        ref_info = f" (ref={ref!r})" if ref else ""
        reason_info = f": {reason}" if reason else ""
        super().__init__(f"Cannot resolve path '{path}'{ref_info}{reason_info}")


class NotPopulatedError(ReferenceResolutionError):
    """Raised by ``Document.assert_populated`` for a path that was not populated."""

    def __init__(self, path: str):
        """Initialize NotPopulatedError.

        Args:
            path: The path expected to be populated.
        """
        super().__init__(path, reason="path is not populated")


class UnsupportedOperationError(LocalgooseError):
    """Raised for features the file-based engine never emulates.

    Sessions, transactions and change streams always fail fast with this error.

    Attributes:
        feature: The unsupported feature.
    """

    def __init__(self, feature: str):
        """Initialize UnsupportedOperationError.

        Args:
            feature: Name of the unsupported feature.
        """
        self.feature = feature
        super().__init__(f"{feature} are not supported in file-based storage")


class DocumentNotFoundError(LocalgooseError):
    """Raised by a Query marked with ``or_fail()`` that found nothing.

    Attributes:
        model: Name of the queried model.
        conditions: The query conditions.
    """

    def __init__(self, model: str, conditions: dict[str, Any] | None = None):
        """Initialize DocumentNotFoundError.

        Args:
            model: Name of the queried model.
            conditions: The query conditions.
        """
        self.model = model
        self.conditions = conditions or {}
        super().__init__(f"No document found for {self.conditions!r} on model '{model}'")


class QueryOperatorError(LocalgooseError):
    """Raised for an unknown query operator when ``strict_query`` is enabled.

    Without ``strict_query`` an unknown operator simply does not match.

    Attributes:
        operator: The offending operator (e.g. "$near").
    """

    def __init__(self, operator: str):
        """Initialize QueryOperatorError.

        Args:
            operator: The unknown operator.
        """
        self.operator = operator
        super().__init__(f"Unknown query operator: {operator}")


class PersistenceError(LocalgooseError):
    """Raised when the persistence collaborator fails to read or write.

    Attributes:
        details: Description of the failure.
        cause: Optional original exception.
    """

    def __init__(self, details: str, cause: BaseException | None = None):
        """Initialize PersistenceError.

        Args:
            details: Description of the failure.
            cause: Optional original exception.
        """
        self.details = details
        self.cause = cause

        cause_info = f" (caused by: {type(cause).__name__}: {cause})" if cause else ""
        super().__init__(f"Persistence error: {details}{cause_info}")

        if cause:
            self.__cause__ = cause


__all__ = [
    "LocalgooseError",
    "ValidationError",
    "CastError",
    "ReferenceResolutionError",
    "NotPopulatedError",
    "UnsupportedOperationError",
    "QueryOperatorError",
    "DocumentNotFoundError",
    "PersistenceError",
]
