"""
Abstract base classes and interfaces for the efficient-frontier engine.
These define contracts that implementations must follow.
"""
from abc import ABC, abstractmethod
from typing import Any, Optional


class IOptimizationBackend(ABC):
    """Interface for a risk/return optimization strategy"""

    @abstractmethod
    def minimize(
        self,
        moments: Any,
        canonical: Any,
        objective: Any,
        target_return: Optional[float] = None
    ) -> Any:
        """
        Minimize the scalarized objective under the canonical constraints.

        Implementations raise PointInfeasible when the problem has no solution
        and SolverError on numerical failure.
        """
        pass


class ILogger(ABC):
    """Interface for logging operations"""

    @abstractmethod
    def debug(self, message: str, **kwargs) -> None:
        """Log debug message"""
        pass

    @abstractmethod
    def info(self, message: str, **kwargs) -> None:
        """Log info message"""
        pass

    @abstractmethod
    def warning(self, message: str, **kwargs) -> None:
        """Log warning message"""
        pass

    @abstractmethod
    def error(self, message: str, **kwargs) -> None:
        """Log error message"""
        pass

    @abstractmethod
    def critical(self, message: str, **kwargs) -> None:
        """Log critical message"""
        pass


class IConfigManager(ABC):
    """Interface for configuration management"""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value"""
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Set configuration value"""
        pass

    @abstractmethod
    def load_from_file(self, file_path: str) -> None:
        """Load configuration from file"""
        pass

    @abstractmethod
    def save_to_file(self, file_path: str) -> None:
        """Save configuration to file"""
        pass
