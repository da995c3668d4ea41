"""
Custom exception hierarchy for the efficient-frontier engine.
Provides specific error types for different failure scenarios.
"""
from typing import Optional, Dict, Any


class FrontierError(Exception):
    """Base exception for the efficient-frontier engine"""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}

    def __str__(self) -> str:
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message


class ValidationError(FrontierError):
    """Validation errors"""
    pass


class AssetMismatch(ValidationError):
    """Portfolio specification and returns data disagree on the asset universe"""
    pass


class OptimizationError(FrontierError):
    """Portfolio optimization errors"""
    pass


class ConstraintInfeasible(OptimizationError):
    """No weight vector satisfies the constraint set"""
    pass


class PointInfeasible(OptimizationError):
    """A single frontier target cannot be reached under the constraints"""
    pass


class SolverError(OptimizationError):
    """Numerical failure of a backend solver for one problem"""
    pass


class EmptyFrontier(OptimizationError):
    """Every frontier target was unreachable"""
    pass


class UnboundedProblem(OptimizationError):
    """The problem has no finite optimum or no finite sampling region"""
    pass


class ConfigurationError(FrontierError):
    """Configuration-related errors"""
    pass


class MissingConfigurationError(ConfigurationError):
    """Error when required configuration is missing"""
    pass


class InvalidConfigurationError(ConfigurationError):
    """Error when configuration values are invalid"""
    pass


# Utility functions for error handling
def create_error_context(**kwargs) -> Dict[str, Any]:
    """Create error context dictionary"""
    return {k: v for k, v in kwargs.items() if v is not None}


def wrap_exception(
    original_exception: Exception,
    new_exception_class: type,
    message: str,
    error_code: Optional[str] = None,
    **context
) -> FrontierError:
    """Wrap an exception with additional context"""
    error_context = create_error_context(
        original_exception=str(original_exception),
        original_type=type(original_exception).__name__,
        **context
    )

    return new_exception_class(
        message=message,
        error_code=error_code,
        context=error_context
    )
