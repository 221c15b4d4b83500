"""
Input validation and sanitization utilities.
Provides decorators and functions for validating caller-supplied ids and emails.
"""

from typing import Any, Callable, Iterable, List
import functools
import re

from shared_utils.error_handler import ValidationError
from shared_utils.logging_utils import get_scoped_logger
from shared_utils.constants import LogScope


# Google Drive ids are URL-safe base64-ish strings
_FILE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class InputValidator:
    """Utility class for input validation."""

    @staticmethod
    def validate_non_empty_string(value: str, field_name: str) -> str:
        """Validate non-empty string.

        Args:
            value: String to validate
            field_name: Name of field for error messages

        Returns:
            Validated (stripped) string

        Raises:
            ValidationError: If validation fails
        """
        if not isinstance(value, str):
            raise ValidationError(f"{field_name} must be a string")

        if not value or not value.strip():
            raise ValidationError(f"{field_name} cannot be empty")

        return value.strip()

    @staticmethod
    def validate_file_id(value: str) -> str:
        """Validate a Drive file id.

        Raises:
            ValidationError: If the id is empty or contains unexpected characters
        """
        file_id = InputValidator.validate_non_empty_string(value, "file_id")
        if not _FILE_ID_PATTERN.match(file_id):
            raise ValidationError("Invalid file_id format", context={"file_id": file_id})
        return file_id

    @staticmethod
    def validate_file_ids(values: Iterable[str]) -> List[str]:
        """Validate a non-empty list of Drive file ids, preserving order."""
        if isinstance(values, str) or not isinstance(values, (list, tuple)):
            raise ValidationError("file_ids must be a list of strings")
        if not values:
            raise ValidationError("file_ids cannot be empty")
        return [InputValidator.validate_file_id(v) for v in values]

    @staticmethod
    def validate_email(value: str) -> str:
        """Validate email address format.

        Raises:
            ValidationError: If validation fails
        """
        email = InputValidator.validate_non_empty_string(value, "email")
        if not _EMAIL_PATTERN.match(email):
            raise ValidationError("Invalid email format", context={"email": email})
        return email


def validate_input(
    validation_rules: dict[str, Callable],
    scope: str = LogScope.VALIDATION
):
    """Decorator to validate function arguments against rules.

    Args:
        validation_rules: Dict mapping param names to validation functions
        scope: Log scope

    Example:
        @validate_input({'file_id': InputValidator.validate_file_id})
        def process(file_id):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            logger = get_scoped_logger(scope)

            try:
                for param_name, validator in validation_rules.items():
                    if param_name in kwargs:
                        kwargs[param_name] = validator(kwargs[param_name])

                logger.debug(
                    f"{func.__name__}_validation_passed",
                    func_name=func.__name__,
                    validated_params=list(validation_rules.keys())
                )

                return func(*args, **kwargs)

            except ValidationError as e:
                logger.warning(
                    f"{func.__name__}_validation_failed",
                    func_name=func.__name__,
                    error=str(e)
                )
                raise

        return wrapper
    return decorator
