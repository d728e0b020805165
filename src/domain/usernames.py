import re
from typing import Optional

from src.domain.exceptions import InvalidUsernameException

# GitHub username grammar: alphanumerics and single hyphens, 1-39 chars,
# no leading or trailing hyphen.
USERNAME_PATTERN = re.compile(r"[a-zA-Z0-9](?:[a-zA-Z0-9]|-(?=[a-zA-Z0-9])){0,38}")


def is_valid_username(username: Optional[str]) -> bool:
    if not isinstance(username, str):
        return False
    return USERNAME_PATTERN.fullmatch(username) is not None


def validate_usernames(old_username: Optional[str], new_username: Optional[str]) -> None:
    """
    Checks the pair of usernames before any network call is made.

    Raises:
        InvalidUsernameException: If either username is missing or malformed,
            or if both are the same.
    """
    if not old_username or not new_username:
        raise InvalidUsernameException("Both the old and new usernames are required.")

    if not is_valid_username(old_username):
        raise InvalidUsernameException(f"Invalid old username format: {old_username}")

    if not is_valid_username(new_username):
        raise InvalidUsernameException(f"Invalid new username format: {new_username}")

    if old_username == new_username:
        raise InvalidUsernameException("Old and new usernames cannot be the same.")
