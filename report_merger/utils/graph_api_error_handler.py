"""Error handling utilities for Graph API operations."""

import logging
import time
from functools import wraps
from typing import Any, Callable, Dict, Optional
import requests

from .exceptions import DocumentStoreError

logger = logging.getLogger(__name__)


class GraphAPIRetryableError(Exception):
    """Exception for retryable Graph API errors."""

    pass


class GraphAPIFatalError(Exception):
    """Exception for non-retryable Graph API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GraphAPIErrorHandler:
    """Handles Graph API errors with retry logic and categorization."""

    RETRYABLE_STATUS_CODES = {
        429,  # Too Many Requests
        500,  # Internal Server Error
        502,  # Bad Gateway
        503,  # Service Unavailable
        504,  # Gateway Timeout
    }

    RETRYABLE_ERROR_CODES = {
        "TooManyRequests",
        "ServiceNotAvailable",
        "Timeout",
        "InternalServerError",
    }

    def __init__(
        self, max_retries: int = 3, base_delay: float = 1.0, max_delay: float = 60.0
    ):
        """Initialize error handler with retry settings."""
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay

    def is_retryable_error(self, error: Exception) -> bool:
        """Determine if an error is retryable."""
        if isinstance(error, GraphAPIRetryableError):
            return True

        if isinstance(error, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
            return True

        if isinstance(error, requests.exceptions.RequestException):
            if getattr(error, "response", None) is not None:
                return error.response.status_code in self.RETRYABLE_STATUS_CODES

        return False

    def get_retry_delay(self, attempt: int, error: Optional[Exception] = None) -> float:
        """Calculate retry delay with exponential backoff.

        A ``Retry-After`` header on a 429 response takes precedence.
        """
        response = getattr(error, "response", None) if error else None
        if response is not None and response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            if retry_after:
                try:
                    return min(float(retry_after), self.max_delay)
                except ValueError:
                    pass

        delay = self.base_delay * (2**attempt)
        return min(delay, self.max_delay)

    def categorize_error(self, error: Exception) -> Dict[str, Any]:
        """Categorize Graph API error for better handling."""
        error_info = {
            "type": type(error).__name__,
            "message": str(error),
            "retryable": self.is_retryable_error(error),
            "category": "unknown",
        }

        if isinstance(error, requests.exceptions.RequestException):
            error_info["category"] = "http"
            if getattr(error, "response", None) is not None:
                error_info["status_code"] = error.response.status_code
                error_info["response_text"] = error.response.text[:500]

                try:
                    error_json = error.response.json()
                    if "error" in error_json:
                        graph_error = error_json["error"]
                        error_info["graph_code"] = graph_error.get("code", "")
                        error_info["graph_message"] = graph_error.get("message", "")

                        if graph_error.get("code") in self.RETRYABLE_ERROR_CODES:
                            error_info["retryable"] = True

                except ValueError:
                    pass

        elif isinstance(error, (GraphAPIRetryableError, GraphAPIFatalError)):
            error_info["category"] = "graph_api"

        return error_info

    def handle_error(
        self, error: Exception, operation: str, context: Optional[Dict[str, Any]] = None
    ) -> None:
        """Handle and log Graph API error with context."""
        error_info = self.categorize_error(error)
        context = context or {}

        log_message = f"Graph API error in {operation}: {error_info['message']}"
        if context:
            log_message += f" | Context: {context}"

        if error_info["retryable"]:
            logger.warning(f"Retryable {log_message}")
        else:
            logger.error(f"Fatal {log_message}")

        logger.debug(f"Error details: {error_info}")


def _instance_handler(args) -> Optional[GraphAPIErrorHandler]:
    handler = getattr(args[0], "error_handler", None) if args else None
    return handler if isinstance(handler, GraphAPIErrorHandler) else None


def with_retry(
    max_retries: int = 3,
    base_delay: float = 1.0,
    error_handler: Optional[GraphAPIErrorHandler] = None,
):
    """Decorator for adding retry logic to Graph API operations.

    On methods of an object that has an ``error_handler``, that handler's
    retry settings are used unless ``error_handler`` is given explicitly.
    Failures surface as :class:`DocumentStoreError`; errors that are already
    a ``DocumentStoreError`` propagate unchanged.
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            handler = error_handler or _instance_handler(args)
            if handler is None:
                handler = GraphAPIErrorHandler(max_retries, base_delay)
            attempts = handler.max_retries

            for attempt in range(attempts + 1):
                try:
                    return func(*args, **kwargs)

                except DocumentStoreError:
                    raise

                except Exception as e:
                    if attempt == attempts:
                        handler.handle_error(
                            e,
                            func.__name__,
                            {"attempt": attempt + 1, "max_retries": attempts},
                        )
                        raise DocumentStoreError(
                            f"Graph API operation failed after {attempts + 1} attempts: {e}"
                        )

                    if not handler.is_retryable_error(e):
                        handler.handle_error(
                            e,
                            func.__name__,
                            {"attempt": attempt + 1, "retryable": False},
                        )
                        raise DocumentStoreError(
                            f"Graph API operation failed with non-retryable error: {e}"
                        )

                    delay = handler.get_retry_delay(attempt, e)
                    logger.info(
                        f"Retrying {func.__name__} in {delay:.1f}s (attempt {attempt + 2}/{attempts + 1})"
                    )
                    time.sleep(delay)

        return wrapper

    return decorator


def safe_graph_operation(
    operation_name: str, error_handler: Optional[GraphAPIErrorHandler] = None
):
    """Context manager that times a Graph API operation and logs its failure."""

    class GraphOperationContext:
        def __init__(self, name: str, handler: Optional[GraphAPIErrorHandler]):
            self.name = name
            self.handler = handler or GraphAPIErrorHandler()
            self.start_time = None

        def __enter__(self):
            self.start_time = time.time()
            logger.debug(f"Starting Graph API operation: {self.name}")
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            duration = time.time() - self.start_time if self.start_time else 0

            if exc_type is None:
                logger.debug(
                    f"Graph API operation completed: {self.name} ({duration:.2f}s)"
                )
            else:
                self.handler.handle_error(
                    exc_val, self.name, {"duration": f"{duration:.2f}s"}
                )

            return False

    return GraphOperationContext(operation_name, error_handler)


def validate_graph_response(response: requests.Response, operation: str) -> None:
    """Validate Graph API response and raise appropriate errors."""
    try:
        response.raise_for_status()
    except requests.exceptions.HTTPError as e:
        if response.status_code in GraphAPIErrorHandler.RETRYABLE_STATUS_CODES:
            raise GraphAPIRetryableError(
                f"{operation} failed with retryable error: {e}"
            )
        raise GraphAPIFatalError(
            f"{operation} failed with fatal error: {e}", response.status_code
        )
