"""
Password validation utilities
Enforces the account password policy for every role
"""

import re
from typing import Tuple

SPECIAL_CHARACTERS = r'[!@#$%^&*()_+\-=\[\]{};:\'",.<>/?\\|`~]'

# (pattern that must match, message when it does not)
PASSWORD_RULES = [
    (r'[A-Z]', "Password must contain at least one uppercase letter"),
    (r'[a-z]', "Password must contain at least one lowercase letter"),
    (r'\d', "Password must contain at least one number"),
    (SPECIAL_CHARACTERS, "Password must contain at least one special character"),
]


class PasswordValidator:
    """Validates password strength and requirements"""

    MIN_LENGTH = 8
    MAX_LENGTH = 128

    @staticmethod
    def validate(password: str) -> Tuple[bool, str]:
        """
        Validate password against security requirements

        Returns:
            (is_valid, error_message)
        """
        if not password:
            return False, "Password is required"

        if len(password) < PasswordValidator.MIN_LENGTH:
            return False, f"Password must be at least {PasswordValidator.MIN_LENGTH} characters long"

        if len(password) > PasswordValidator.MAX_LENGTH:
            return False, f"Password must not exceed {PasswordValidator.MAX_LENGTH} characters"

        for pattern, message in PASSWORD_RULES:
            if not re.search(pattern, password):
                return False, message

        return True, ""


def validate_password(password: str) -> None:
    """
    Validate password and raise exception if invalid

    Raises:
        ValueError: If password doesn't meet requirements
    """
    is_valid, error_message = PasswordValidator.validate(password)
    if not is_valid:
        raise ValueError(error_message)
