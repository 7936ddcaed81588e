"""
Exceptions raised by the authentication subsystem.

Everything a caller can see is an :class:`AuthError`. Provider, backend and
transport failures are normalized to one of these at the boundary where
they occur, so nothing above the boundary needs to inspect raw ``httpx``
or ``redis`` errors.
"""

from typing import Optional, Any


class AuthError(RuntimeError):
    """Base class for all normalized authentication failures."""

    def __init__(self, message: str = '', status_code: Optional[int] = None
                 ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class DuplicateAccount(AuthError):
    """An account with this e-mail address already exists."""


class WeakCredential(AuthError):
    """The password was rejected as too weak."""


class InvalidCredentials(AuthError):
    """The e-mail/password combination (or federated assertion) was bad."""


class EmailNotVerified(AuthError):
    """
    Credentials were correct but the e-mail address is not verified yet.

    This is deliberately not an :class:`InvalidCredentials`: callers offer a
    "resend verification" action instead of a retry.
    """

    def __init__(self, message: str = '', account: Any = None,
                 status_code: Optional[int] = None) -> None:
        super().__init__(message, status_code=status_code)
        self.account = account


class TooManyRequests(AuthError):
    """Rate limited by the backend or provider."""


class Unauthorized(AuthError):
    """Missing, invalid or expired credential."""


class Forbidden(AuthError):
    """Valid credential, insufficient rights."""


class NotFound(AuthError):
    """The requested resource does not exist."""


class ServerError(AuthError):
    """The remote service failed (5xx) or answered with garbage."""


class NetworkFailure(AuthError):
    """No response reached the caller."""


class MalformedRequest(AuthError):
    """The request itself was bad; a caller error, not a transport one."""


class InvalidState(AuthError):
    """The operation is not valid in the current session state."""


# Credential persistence. These never leave the subsystem.

class InvalidToken(RuntimeError):
    """A persisted credential record is malformed or has a bad signature."""


class Unavailable(RuntimeError):
    """The credential persistence backend could not be reached."""


class CredentialPersistenceFailed(RuntimeError):
    """Failed to persist a credential."""


class CredentialDeletionFailed(RuntimeError):
    """Failed to remove a persisted credential."""


USER_MESSAGES = {
    DuplicateAccount: 'This email is already registered. Please use a '
                      'different email or try logging in.',
    WeakCredential: 'Password is too weak. Please use a stronger password.',
    InvalidCredentials: 'Invalid login credentials. Please check and try '
                        'again.',
    EmailNotVerified: 'Please verify your email before logging in. Check '
                      'your inbox for a verification link.',
    TooManyRequests: 'Too many requests. Please try again later.',
    Unauthorized: 'Authentication failed. Please log in again.',
    Forbidden: 'You do not have permission to perform this action.',
    NotFound: 'The requested resource was not found.',
    ServerError: 'A server error occurred. Please try again later.',
    NetworkFailure: 'No response from server. Please check your internet '
                    'connection.',
    MalformedRequest: 'The request was not valid. Please check and try '
                      'again.',
    InvalidState: 'This action is not available right now.',
}


def user_message(exc: BaseException) -> str:
    """Get a display-ready sentence for a normalized error."""
    for klass in type(exc).__mro__:
        if klass in USER_MESSAGES:
            return USER_MESSAGES[klass]
    return str(exc) or 'An unknown error occurred. Please try again.'
