"""
Infrastructure layer - Implementation of interfaces defined in the domain layer.

This package contains the optimization backends and frontier algorithms, plus
configuration, logging, error handling and parallel dispatch.
"""

# Infrastructure components are imported directly from their modules to avoid circular imports

__all__ = []
