"""
Custom exceptions for the Question Bank Console.

This module defines application-specific exceptions that provide
clear error messages and context for different types of failures.
"""

from typing import Optional, Any


class QuestionBankError(Exception):
    """Base exception for all Question Bank Console errors."""

    def __init__(self, message: str, context: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} (Context: {context_str})"
        return self.message


class ConfigurationError(QuestionBankError):
    """Raised when there are issues with configuration loading or validation."""

    def __init__(self, message: str, config_file: Optional[str] = None, field: Optional[str] = None):
        context = {}
        if config_file:
            context['config_file'] = config_file
        if field:
            context['field'] = field
        super().__init__(message, context)


class DatabaseError(QuestionBankError):
    """Raised when there are database connection or query issues."""

    def __init__(self, message: str, query: Optional[str] = None, params: Optional[list] = None):
        context = {}
        if query:
            context['query'] = query
        if params:
            context['params'] = str(params)
        super().__init__(message, context)


class ValidationError(QuestionBankError):
    """Raised when input validation fails."""

    def __init__(self, message: str, field: Optional[str] = None, value: Optional[Any] = None):
        context = {}
        if field:
            context['field'] = field
        if value is not None:
            context['value'] = str(value)
        super().__init__(message, context)


class QueryExecutionError(QuestionBankError):
    """Raised when a question search fails after all retry attempts."""

    def __init__(self, message: str, attempts: Optional[int] = None, query_key: Optional[tuple] = None):
        context = {}
        if attempts:
            context['attempts'] = attempts
        if query_key:
            context['query_key'] = str(query_key)
        super().__init__(message, context)


class StateStorageError(QuestionBankError):
    """Raised when a state backend cannot be created or reached."""

    def __init__(self, message: str, backend: Optional[str] = None, key: Optional[str] = None):
        context = {}
        if backend:
            context['backend'] = backend
        if key:
            context['key'] = key
        super().__init__(message, context)
