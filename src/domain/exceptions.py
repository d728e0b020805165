from typing import Optional


class UpdaterException(Exception):
    """Base exception for all username-updater errors."""
    pass

class InvalidUsernameException(UpdaterException):
    """Raised when the old/new usernames fail validation before any I/O."""
    pass

class AuthenticationException(UpdaterException):
    """Raised when the GitHub token is missing, invalid, or rejected."""
    pass

class TransportException(UpdaterException):
    """Raised when a GitHub API call fails for a reason other than a conflict."""
    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)

class RateLimitExceededException(TransportException):
    """Raised when the GitHub rate limit is still exhausted after all retries."""
    def __init__(self, reset_at: Optional[int], message: str = "GitHub API rate limit exceeded.", status: int = 403):
        self.reset_at = reset_at
        super().__init__(f"{message} Resets at: {reset_at}", status=status)

class ConflictException(UpdaterException):
    """Raised when a commit is rejected because the file's sha no longer matches."""
    def __init__(self, path: str, message: str = "File changed on the server since it was read."):
        self.path = path
        super().__init__(f"{message} Path: {path}")
