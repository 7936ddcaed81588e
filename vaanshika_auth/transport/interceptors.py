"""
Request and response interceptors for calls to the backend.

Both are installed as ``httpx`` event hooks, so they run on every call made
through :class:`.BackendClient` without the caller doing anything.

The request interceptor attaches ``Authorization: Bearer <credential>``
according to :class:`.PrecedenceResolver`. The response interceptor
classifies the result and, on ``Unauthorized`` only, clears the stored local
credential. Neither retries, and neither touches the session state.
"""

from enum import Enum
from typing import Optional

import httpx

import logging

from .. import domain
from ..credentials import CredentialStore, PrecedenceResolver
from ..exceptions import AuthError, DuplicateAccount, WeakCredential, \
    InvalidCredentials, EmailNotVerified, TooManyRequests, Unauthorized, \
    Forbidden, NotFound, ServerError, NetworkFailure, MalformedRequest, \
    CredentialDeletionFailed
from .payloads import parse_error

logger = logging.getLogger(__name__)

CREDENTIAL_OVERRIDE = 'vaanshika_auth.credential_override'
"""Request extension: send exactly this credential, skipping resolution."""

ATTACHED_CREDENTIAL = 'vaanshika_auth.attached_credential'
"""Request extension: the credential that was attached, or ``None``."""


class Outcome(Enum):
    """Classification of an inbound result."""

    SUCCESS = 'success'
    UNAUTHORIZED = 'unauthorized'
    """Missing, invalid or expired credential."""
    FORBIDDEN = 'forbidden'
    """Valid credential, insufficient rights."""
    NOT_FOUND = 'not_found'
    SERVER_ERROR = 'server_error'
    NETWORK_FAILURE = 'network_failure'
    """No response reached the caller."""
    MALFORMED_REQUEST = 'malformed_request'
    """Caller error, not transport."""


_ERRORS = {
    Outcome.UNAUTHORIZED: Unauthorized,
    Outcome.FORBIDDEN: Forbidden,
    Outcome.NOT_FOUND: NotFound,
    Outcome.SERVER_ERROR: ServerError,
    Outcome.NETWORK_FAILURE: NetworkFailure,
    Outcome.MALFORMED_REQUEST: MalformedRequest,
}

BACKEND_CODES = {
    'email-not-verified': EmailNotVerified,
    'weak-password': WeakCredential,
    'invalid-credentials': InvalidCredentials,
    'duplicate-account': DuplicateAccount,
    'email-already-in-use': DuplicateAccount,
    'too-many-requests': TooManyRequests,
}
"""Machine-readable ``code`` values the backend puts in error bodies."""


class RequestInterceptor(object):
    """Attaches the active credential to each outbound request."""

    def __init__(self, resolver: PrecedenceResolver) -> None:
        self.resolver = resolver

    async def __call__(self, request: httpx.Request) -> None:
        credential: Optional[domain.Credential] = \
            request.extensions.get(CREDENTIAL_OVERRIDE)
        if credential is None:
            try:
                credential = await self.resolver.resolve()
            except AuthError as e:
                # The call goes out anonymous; the backend will say so.
                logger.info('No federated credential for %s: %s',
                            request.url.path, e)
                credential = None
        if 'Authorization' in request.headers:
            del request.headers['Authorization']
        if credential is not None:
            request.headers['Authorization'] = credential.header
        request.extensions[ATTACHED_CREDENTIAL] = credential
        logger.debug('%s %s with %r', request.method, request.url.path,
                     credential)


class ResponseInterceptor(object):
    """Classifies inbound results and scrubs stale local credentials."""

    def __init__(self, store: CredentialStore) -> None:
        self.store = store

    @staticmethod
    def classify(response: httpx.Response) -> Outcome:
        """Classify a response by status code."""
        status = response.status_code
        if status < 400:
            return Outcome.SUCCESS
        if status == 401:
            return Outcome.UNAUTHORIZED
        if status == 403:
            return Outcome.FORBIDDEN
        if status == 404:
            return Outcome.NOT_FOUND
        if status >= 500:
            return Outcome.SERVER_ERROR
        return Outcome.MALFORMED_REQUEST

    async def __call__(self, response: httpx.Response) -> None:
        outcome = self.classify(response)
        if outcome is Outcome.SUCCESS:
            return
        path = response.request.url.path
        if outcome is Outcome.UNAUTHORIZED:
            logger.warning('Authentication error on %s', path)
            self._scrub(response.request.extensions.get(ATTACHED_CREDENTIAL))
        elif outcome is Outcome.FORBIDDEN:
            logger.warning('Permission error on %s', path)
        elif outcome is Outcome.NOT_FOUND:
            logger.info('Resource not found: %s', path)
        elif outcome is Outcome.SERVER_ERROR:
            logger.error('Server error %i on %s', response.status_code, path)
        else:
            logger.info('Request error %i on %s', response.status_code, path)

    def _scrub(self, attached: Optional[domain.Credential]) -> None:
        """Clear the local credential that was just rejected."""
        if attached is None or not attached.is_local:
            # Nothing local was sent; a local credential stored since then
            # is newer than this response.
            return
        try:
            if self.store.clear(expected=attached):
                logger.info('Cleared rejected local credential')
        except CredentialDeletionFailed as e:
            logger.error('Could not remove rejected credential: %s', e)

    def network_failure(self, exc: Exception) -> NetworkFailure:
        """Normalize a call that got no response."""
        logger.warning('Network error: no response received (%s)', exc)
        return NetworkFailure('No response from server')

    def error_for(self, response: httpx.Response) -> AuthError:
        """
        Build the normalized error for a failed response.

        The response classification decides the error, refined by the
        status code (409, 429) and by the ``code`` in the body, if any.
        """
        outcome = self.classify(response)
        status = response.status_code
        try:
            body = parse_error(response.json())
        except ValueError:
            body = parse_error(response.text or None)
        message = body.detail or f'Error {status}: An error occurred'

        klass = BACKEND_CODES.get((body.code or '').lower())
        if klass is None and status == 429:
            klass = TooManyRequests
        elif klass is None and status == 409:
            klass = DuplicateAccount
        if klass is EmailNotVerified:
            account = body.user.to_account() if body.user else None
            return EmailNotVerified(message, account=account,
                                    status_code=status)
        if klass is None:
            klass = _ERRORS.get(outcome, ServerError)
        return klass(message, status_code=status)
