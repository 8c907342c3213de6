"""Custom exceptions for the timeline engine with detailed error information."""

from datetime import datetime
from typing import Optional, Dict, Any, List
from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels for categorizing exceptions."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Categories of errors for better classification."""
    VALIDATION = "validation"
    DATA = "data"
    STORAGE = "storage"
    CONFIGURATION = "configuration"
    RESOURCE = "resource"


class TrackerError(Exception):
    """Base exception for all timeline engine errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.VALIDATION,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.severity = severity
        self.category = category
        self.details = details or {}
        self.recoverable = recoverable
        self.retry_after = retry_after
        self.context = context or {}
        self.timestamp = datetime.utcnow()

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging and API responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "details": self.details,
            "recoverable": self.recoverable,
            "retry_after": self.retry_after,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "exception_type": self.__class__.__name__
        }

    def add_context(self, **kwargs):
        """Add additional context to the exception."""
        self.context.update(kwargs)
        return self

    def add_details(self, **kwargs):
        """Add additional details to the exception."""
        self.details.update(kwargs)
        return self


class UnknownWorkflowSelectorError(TrackerError):
    """Raised when a selector key is not in the workflow catalog."""

    def __init__(
        self,
        selector_key: str,
        known_selectors: Optional[List[str]] = None,
        **kwargs
    ):
        super().__init__(
            f"Unknown workflow selector: '{selector_key}'",
            error_code="UnknownWorkflowSelector",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.VALIDATION,
            **kwargs
        )
        self.selector_key = selector_key
        self.add_context(selector_key=selector_key)
        if known_selectors:
            self.add_details(known_selectors=sorted(known_selectors))


class MalformedRecordError(TrackerError):
    """Raised when milestone data breaks the fixed step order of a shape."""

    def __init__(
        self,
        message: str,
        missing_fields: Optional[List[str]] = None,
        workflow: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            error_code="MalformedRecord",
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.DATA,
            **kwargs
        )
        self.missing_fields = missing_fields or []
        if workflow:
            self.add_context(workflow=workflow)
        if missing_fields:
            self.add_details(missing_fields=missing_fields)


class EmptyShapeError(TrackerError):
    """Raised when a workflow shape has no main steps."""

    def __init__(
        self,
        message: str,
        workflow: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            error_code="EmptyShape",
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.CONFIGURATION,
            **kwargs
        )
        if workflow:
            self.add_context(workflow=workflow)


class InvalidOrdinalError(TrackerError):
    """Raised when ordinal mode is given a missing or non-positive ordinal."""

    def __init__(self, message: str, ordinal: Optional[int] = None, **kwargs):
        super().__init__(
            message,
            error_code="InvalidOrdinal",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.VALIDATION,
            **kwargs
        )
        self.add_context(ordinal=ordinal)


class RecordNotFoundError(TrackerError):
    """Raised when no shipment matches an order/tracking pair."""

    def __init__(
        self,
        order_no: str,
        tracking_no: str,
        **kwargs
    ):
        super().__init__(
            f"No shipment found for order '{order_no}' and tracking '{tracking_no}'",
            error_code="RecordNotFound",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.DATA,
            **kwargs
        )
        self.add_context(order_no=order_no, tracking_no=tracking_no)


class RecordSourceError(TrackerError):
    """Raised when the record source cannot be read."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.STORAGE,
            recoverable=True,
            retry_after=3,
            **kwargs
        )
        if source:
            self.add_context(source=source)
        if operation:
            self.add_context(operation=operation)


class RateLimitExceededError(TrackerError):
    """Raised when a client exceeds its request allowance."""

    def __init__(
        self,
        client_id: str,
        limit: int,
        retry_after: int,
        **kwargs
    ):
        super().__init__(
            f"Rate limit of {limit} requests exceeded, try again later",
            error_code="RateLimitExceeded",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.RESOURCE,
            recoverable=True,
            retry_after=retry_after,
            **kwargs
        )
        self.add_context(client_id=client_id)
        self.add_details(limit=limit)


class ConfigurationError(TrackerError):
    """Raised when configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.CONFIGURATION,
            **kwargs
        )
        if config_key:
            self.add_context(config_key=config_key)


def create_error_response(error: TrackerError) -> Dict[str, Any]:
    """Create a standardized error response from a TrackerError."""
    return {
        "error": error.error_code,
        "message": error.message,
        "details": {
            **error.details,
            "severity": error.severity.value,
            "category": error.category.value,
            "recoverable": error.recoverable,
            "retry_after": error.retry_after,
            "timestamp": error.timestamp.isoformat()
        },
        "context": error.context
    }
