"""
Error handling middleware for the frontier engine.
Turns exceptions into structured responses, log records and process exit codes.
"""

import traceback
from typing import Any, Callable, Dict, Optional, Type
from functools import wraps
from datetime import datetime

from ...domain.exceptions import (
    FrontierError, ValidationError, AssetMismatch, OptimizationError, ConstraintInfeasible,
    UnboundedProblem, EmptyFrontier, ConfigurationError
)
from ...domain.interfaces import ILogger
from ..logging.logger import get_logger

# Process exit codes reported by the command-line interface
EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_VALIDATION = 2
EXIT_INFEASIBLE = 3
EXIT_OPTIMIZATION = 4
EXIT_CONFIGURATION = 5


class ErrorContext:
    """Context information for error handling."""

    def __init__(
        self,
        operation: str,
        request_id: Optional[str] = None,
        additional_context: Optional[Dict[str, Any]] = None
    ):
        self.operation = operation
        self.request_id = request_id
        self.additional_context = additional_context or {}
        self.timestamp = datetime.now()


def _response(
    error: Exception,
    error_code: str,
    category: str,
    severity: str,
    exit_code: int,
    suggested_action: Optional[str] = None
) -> Dict[str, Any]:
    response = {
        'error_code': getattr(error, 'error_code', None) or error_code,
        'message': getattr(error, 'message', None) or str(error),
        'category': category,
        'severity': severity,
        'exit_code': exit_code,
        'timestamp': datetime.now().isoformat(),
        'error_type': type(error).__name__,
    }
    if isinstance(error, FrontierError) and error.context:
        response['context'] = error.context
    if suggested_action:
        response['suggested_action'] = suggested_action
    return response


class ErrorHandler:
    """
    Centralized error handler that provides consistent error processing,
    logging, and response formatting across the application.
    """

    def __init__(self, logger: Optional[ILogger] = None):
        """
        Initialize error handler.

        Args:
            logger: Logger instance for error logging
        """
        self.logger = logger or get_logger(__name__)
        self._error_handlers: Dict[Type[Exception], Callable] = {}
        self._setup_default_handlers()

    def _setup_default_handlers(self) -> None:
        """Setup default error handlers for different exception types."""
        self._error_handlers.update({
            AssetMismatch: self._handle_asset_mismatch,
            ValidationError: self._handle_validation_error,
            ConstraintInfeasible: self._handle_infeasible,
            UnboundedProblem: self._handle_unbounded,
            EmptyFrontier: self._handle_empty_frontier,
            OptimizationError: self._handle_optimization_error,
            ConfigurationError: self._handle_configuration_error,
            FrontierError: self._handle_framework_error,
            FileNotFoundError: self._handle_file_not_found,
            ValueError: self._handle_value_error,
            Exception: self._handle_generic_error
        })

    def handle_error(
        self,
        error: Exception,
        context: Optional[ErrorContext] = None,
        reraise: bool = False
    ) -> Dict[str, Any]:
        """
        Handle an error with appropriate logging and response formatting.

        Args:
            error: The exception to handle
            context: Error context information
            reraise: Whether to reraise the exception after handling

        Returns:
            Error response dictionary

        Raises:
            Exception: If reraise is True
        """
        handler = self._find_handler(type(error))
        error_response = handler(error, context)
        self._log_error(error, error_response, context)

        if reraise:
            raise error

        return error_response

    def _find_handler(self, error_type: Type[Exception]) -> Callable:
        """Find the most specific handler for an error type."""
        for klass in error_type.__mro__:
            if klass in self._error_handlers:
                return self._error_handlers[klass]
        return self._error_handlers[Exception]

    def _log_error(
        self,
        error: Exception,
        error_response: Dict[str, Any],
        context: Optional[ErrorContext]
    ) -> None:
        """Log error with appropriate level and context."""
        severity = error_response.get('severity', 'error')

        log_data = {
            'error_code': error_response.get('error_code'),
            'error_type': type(error).__name__,
            'severity': severity
        }

        if context:
            log_data.update({
                'operation': context.operation,
                'request_id': context.request_id,
                'operation_context': context.additional_context
            })

        if isinstance(error, FrontierError):
            log_data['error_context'] = error.context

        message = f"{error_response.get('category', 'error')} failure: {error}"
        if severity == 'critical':
            log_data['traceback'] = traceback.format_exception(type(error), error, error.__traceback__)
            self.logger.critical(message, **log_data)
        elif severity == 'error':
            self.logger.error(message, **log_data)
        else:
            self.logger.warning(message, **log_data)

    def register_handler(
        self,
        error_type: Type[Exception],
        handler: Callable[[Exception, Optional[ErrorContext]], Dict[str, Any]]
    ) -> None:
        """Register a custom error handler."""
        self._error_handlers[error_type] = handler

    # Specific error handlers

    def _handle_asset_mismatch(self, error: AssetMismatch, context: Optional[ErrorContext]) -> Dict[str, Any]:
        return _response(error, 'ASSET_MISMATCH', 'validation', 'warning', EXIT_VALIDATION,
                         'Make the returns columns match the specification assets')

    def _handle_validation_error(self, error: ValidationError, context: Optional[ErrorContext]) -> Dict[str, Any]:
        return _response(error, 'VALIDATION_ERROR', 'validation', 'warning', EXIT_VALIDATION,
                         'Verify input parameters and data format')

    def _handle_infeasible(self, error: ConstraintInfeasible, context: Optional[ErrorContext]) -> Dict[str, Any]:
        return _response(error, 'CONSTRAINT_INFEASIBLE', 'optimization', 'error', EXIT_INFEASIBLE,
                         'Relax the conflicting bounds or group limits')

    def _handle_unbounded(self, error: UnboundedProblem, context: Optional[ErrorContext]) -> Dict[str, Any]:
        return _response(error, 'UNBOUNDED_PROBLEM', 'optimization', 'error', EXIT_INFEASIBLE,
                         'Add box or long-only bounds')

    def _handle_empty_frontier(self, error: EmptyFrontier, context: Optional[ErrorContext]) -> Dict[str, Any]:
        return _response(error, 'EMPTY_FRONTIER', 'optimization', 'error', EXIT_OPTIMIZATION,
                         'Raise solver limits or change the number of points')

    def _handle_optimization_error(self, error: OptimizationError, context: Optional[ErrorContext]) -> Dict[str, Any]:
        return _response(error, 'OPTIMIZATION_ERROR', 'optimization', 'error', EXIT_OPTIMIZATION,
                         'Review optimization constraints and solver settings')

    def _handle_configuration_error(self, error: ConfigurationError, context: Optional[ErrorContext]) -> Dict[str, Any]:
        return _response(error, 'CONFIGURATION_ERROR', 'configuration', 'error', EXIT_CONFIGURATION,
                         'Check the configuration files and environment variables')

    def _handle_framework_error(self, error: FrontierError, context: Optional[ErrorContext]) -> Dict[str, Any]:
        return _response(error, 'FRONTIER_ERROR', 'framework', 'error', EXIT_UNEXPECTED)

    def _handle_file_not_found(self, error: FileNotFoundError, context: Optional[ErrorContext]) -> Dict[str, Any]:
        return _response(error, 'FILE_NOT_FOUND', 'input', 'warning', EXIT_VALIDATION,
                         'Check the input file paths')

    def _handle_value_error(self, error: ValueError, context: Optional[ErrorContext]) -> Dict[str, Any]:
        return _response(error, 'VALUE_ERROR', 'validation', 'warning', EXIT_VALIDATION)

    def _handle_generic_error(self, error: Exception, context: Optional[ErrorContext]) -> Dict[str, Any]:
        return _response(error, 'GENERIC_ERROR', 'unknown', 'critical', EXIT_UNEXPECTED)


# Global error handler instance
_global_error_handler: Optional[ErrorHandler] = None


def get_error_handler() -> ErrorHandler:
    """Get global error handler instance."""
    global _global_error_handler
    if _global_error_handler is None:
        _global_error_handler = ErrorHandler()
    return _global_error_handler


def set_error_handler(handler: ErrorHandler) -> None:
    """Set global error handler instance."""
    global _global_error_handler
    _global_error_handler = handler


def handle_errors(operation: str, reraise: bool = False):
    """
    Decorator for automatic error handling.

    Args:
        operation: Operation name for context
        reraise: Whether to reraise exceptions after handling
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                return get_error_handler().handle_error(e, ErrorContext(operation=operation), reraise)

        return wrapper
    return decorator
