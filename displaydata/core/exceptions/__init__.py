from .api_exceptions import (
    APIException,
    ValidationException,
    NotFoundException
)

from .handlers import (
    api_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    general_exception_handler,
    register_exception_handlers
)

__all__ = [
    # Exceptions
    "APIException",
    "ValidationException",
    "NotFoundException",

    # Handlers
    "api_exception_handler",
    "http_exception_handler",
    "validation_exception_handler",
    "general_exception_handler",
    "register_exception_handlers"
]
