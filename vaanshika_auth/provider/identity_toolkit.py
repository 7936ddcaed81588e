"""
Identity provider adapter for Firebase Authentication.

Talks to the Identity Toolkit and Secure Token REST APIs directly:

- ``accounts:signUp`` / ``accounts:signInWithPassword`` for e-mail and
  password accounts,
- ``accounts:signInWithIdp`` to exchange a Google id token obtained from an
  interactive "popup" for a provider session,
- ``accounts:sendOobCode`` for verification and password reset e-mails,
- ``accounts:update`` / ``accounts:lookup`` for the profile,
- ``token`` (Secure Token) to refresh the id token.

The interactive part of the federated flow (opening a browser, receiving the
Google id token) is not done here; pass a ``popup`` coroutine function that
returns the Google id token, or ``None`` if the user closed the window.
"""

import time
from typing import Awaitable, Callable, NamedTuple, Optional
from urllib.parse import urlencode

import httpx
import jwt

import logging

from .. import config
from ..domain import Account
from ..exceptions import AuthError, DuplicateAccount, WeakCredential, \
    InvalidCredentials, TooManyRequests, Unauthorized, Forbidden, NotFound, \
    ServerError, NetworkFailure, MalformedRequest
from .base import IdentityProvider

logger = logging.getLogger(__name__)

Popup = Callable[[], Awaitable[Optional[str]]]

REFRESH_MARGIN = 300
"""Refresh the id token when it expires within this many seconds."""

PROVIDER_ERRORS = {
    # REST API codes.
    'EMAIL_EXISTS': DuplicateAccount,
    'WEAK_PASSWORD': WeakCredential,
    'EMAIL_NOT_FOUND': InvalidCredentials,
    'INVALID_PASSWORD': InvalidCredentials,
    'INVALID_LOGIN_CREDENTIALS': InvalidCredentials,
    'USER_DISABLED': InvalidCredentials,
    'INVALID_IDP_RESPONSE': InvalidCredentials,
    'TOO_MANY_ATTEMPTS_TRY_LATER': TooManyRequests,
    'TOKEN_EXPIRED': Unauthorized,
    'INVALID_ID_TOKEN': Unauthorized,
    'USER_NOT_FOUND': Unauthorized,
    'INVALID_REFRESH_TOKEN': Unauthorized,
    'CREDENTIAL_TOO_OLD_LOGIN_AGAIN': Unauthorized,
    'OPERATION_NOT_ALLOWED': Forbidden,
    'INVALID_EMAIL': MalformedRequest,
    'MISSING_PASSWORD': MalformedRequest,
    'MISSING_EMAIL': MalformedRequest,
    'INVALID_API_KEY': MalformedRequest,
    # Client SDK codes, as relayed by other components.
    'auth/email-already-in-use': DuplicateAccount,
    'auth/weak-password': WeakCredential,
    'auth/user-not-found': InvalidCredentials,
    'auth/wrong-password': InvalidCredentials,
    'auth/invalid-credential': InvalidCredentials,
    'auth/user-disabled': InvalidCredentials,
    'auth/popup-closed-by-user': InvalidCredentials,
    'auth/account-exists-with-different-credential': InvalidCredentials,
    'auth/too-many-requests': TooManyRequests,
    'auth/requires-recent-login': Unauthorized,
    'auth/operation-not-allowed': Forbidden,
    'auth/unauthorized-domain': Forbidden,
    'auth/invalid-email': MalformedRequest,
    'auth/invalid-api-key': MalformedRequest,
    'auth/network-request-failed': NetworkFailure,
}

_BY_STATUS = {
    400: MalformedRequest,
    401: Unauthorized,
    403: Forbidden,
    404: NotFound,
    429: TooManyRequests,
}


def normalize_error(code: str, status_code: Optional[int] = None
                    ) -> AuthError:
    """
    Map a provider error code to the error taxonomy.

    Codes look like ``WEAK_PASSWORD : Password should be at least 6
    characters``; only the leading token is significant.
    """
    key = code.split(' ', 1)[0].strip() if code else ''
    klass = PROVIDER_ERRORS.get(key)
    if klass is None:
        klass = _BY_STATUS.get(status_code or 0, ServerError)
    return klass(code or 'Identity provider error', status_code=status_code)


class _ProviderSession(NamedTuple):
    id_token: str
    refresh_token: str
    expires_at: float


def _expires_at(id_token: str, expires_in: Optional[str]) -> float:
    """Expiry of an id token, from its ``exp`` claim if it has one."""
    try:
        claims = jwt.decode(id_token, options={'verify_signature': False})
        return float(claims['exp'])
    except (jwt.exceptions.InvalidTokenError, KeyError, TypeError,
            ValueError):
        return time.time() + float(expires_in or 3600)


class IdentityToolkitProvider(IdentityProvider):
    """Firebase Authentication over its REST API."""

    def __init__(self, api_key: str, popup: Optional[Popup] = None,
                 request_uri: Optional[str] = None,
                 identity_url: Optional[str] = None,
                 token_url: Optional[str] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None
                 ) -> None:
        """
        Initialize the adapter.

        Parameters
        ----------
        api_key : str
            Web API key of the Firebase project.
        popup : coroutine function
            Runs the interactive Google sign-in and returns its id token, or
            ``None`` if the user gave up.
        request_uri : str
            Sent as ``requestUri`` with federated assertions.
        transport : :class:`httpx.AsyncBaseTransport`
            Alternate transport, mainly for testing.

        """
        super(IdentityToolkitProvider, self).__init__()
        self._api_key = api_key
        self._popup = popup
        self._request_uri = request_uri or \
            f'https://{config.FIREBASE_AUTH_DOMAIN or "localhost"}'
        self._identity_url = (identity_url
                              or config.IDENTITY_TOOLKIT_URL).rstrip('/')
        self._token_url = (token_url or config.SECURE_TOKEN_URL).rstrip('/')
        self._client = httpx.AsyncClient(transport=transport)
        self._session: Optional[_ProviderSession] = None
        if not api_key:
            logger.warning('No API key; identity provider calls will fail')

    async def _post(self, url: str, **kwargs: object) -> dict:
        """POST to the provider and normalize any failure."""
        try:
            response = await self._client.post(
                url, params={'key': self._api_key}, **kwargs
            )
        except httpx.TransportError as e:
            logger.warning('Identity provider unreachable: %s', e)
            raise NetworkFailure(f'Identity provider unreachable: {e}') from e
        try:
            data = response.json()
        except ValueError as e:
            raise ServerError('Identity provider returned garbage',
                              status_code=response.status_code) from e
        if response.is_error:
            error = data.get('error', {}) if isinstance(data, dict) else {}
            code = error.get('message', '') if isinstance(error, dict) \
                else str(error)
            logger.debug('Identity provider rejected request: %s', code)
            raise normalize_error(code, response.status_code)
        if not isinstance(data, dict):
            raise ServerError('Identity provider returned an incomplete '
                              'response', status_code=response.status_code)
        return data

    async def _accounts(self, method: str, payload: dict) -> dict:
        return await self._post(f'{self._identity_url}/accounts:{method}',
                                json=payload)

    def _establish(self, data: dict) -> None:
        try:
            self._session = _ProviderSession(
                id_token=data['idToken'],
                refresh_token=data['refreshToken'],
                expires_at=_expires_at(data['idToken'], data.get('expiresIn'))
            )
        except (KeyError, TypeError) as e:
            raise _incomplete(e) from e

    def _require_session(self) -> _ProviderSession:
        if self._session is None:
            raise Unauthorized('No active identity provider session')
        return self._session

    async def _lookup(self) -> Account:
        session = self._require_session()
        data = await self._accounts('lookup', {'idToken': session.id_token})
        users = data.get('users') or []
        if not users:
            raise Unauthorized('Identity provider has no such user')
        return _account_from(users[0])

    async def create_account(self, email: str, password: str) -> Account:
        data = await self._accounts('signUp', {
            'email': email,
            'password': password,
            'returnSecureToken': True
        })
        self._establish(data)
        try:
            account = Account(uid=data['localId'],
                              email=data.get('email', email))
        except KeyError as e:
            raise _incomplete(e) from e
        self._set_current(account)
        logger.info('Created provider account %s', account.uid)
        return account

    async def sign_in(self, email: str, password: str) -> Account:
        data = await self._accounts('signInWithPassword', {
            'email': email,
            'password': password,
            'returnSecureToken': True
        })
        self._establish(data)
        account = await self._lookup()
        self._set_current(account)
        return account

    async def sign_in_with_popup(self) -> Account:
        if self._popup is None:
            raise MalformedRequest('No federated sign-in flow configured')
        google_token = await self._popup()
        if not google_token:
            raise InvalidCredentials(
                'Sign-in popup was closed before completing the sign-in.'
            )
        data = await self._accounts('signInWithIdp', {
            'postBody': urlencode({'id_token': google_token,
                                   'providerId': 'google.com'}),
            'requestUri': self._request_uri,
            'returnSecureToken': True,
            'returnIdpCredential': True
        })
        self._establish(data)
        account = _account_from(data)
        self._set_current(account)
        logger.info('Federated sign-in for %s', account.uid)
        return account

    async def sign_out(self) -> None:
        self._session = None
        self._set_current(None)

    async def send_verification_email(self) -> None:
        session = self._require_session()
        await self._accounts('sendOobCode', {
            'requestType': 'VERIFY_EMAIL',
            'idToken': session.id_token
        })

    async def send_password_reset_email(self, email: str) -> None:
        await self._accounts('sendOobCode', {
            'requestType': 'PASSWORD_RESET',
            'email': email
        })

    async def update_profile(self, display_name: str) -> Account:
        session = self._require_session()
        data = await self._accounts('update', {
            'idToken': session.id_token,
            'displayName': display_name,
            'returnSecureToken': False
        })
        if self._current is not None:
            account = self._current._replace(display_name=display_name)
        else:
            account = _account_from(data)
        self._set_current(account)
        return account

    async def get_id_token(self, force_refresh: bool = False) -> str:
        """
        Get an id token for the signed-in account, refreshing if needed.

        Raises
        ------
        :class:`.Unauthorized`
            If there is no provider session, or it can no longer be
            refreshed. In the latter case the session is dropped.

        """
        session = self._require_session()
        if not force_refresh and \
                session.expires_at - time.time() > REFRESH_MARGIN:
            return session.id_token
        try:
            data = await self._post(f'{self._token_url}/token', data={
                'grant_type': 'refresh_token',
                'refresh_token': session.refresh_token
            })
        except Unauthorized:
            logger.info('Provider session expired; signing out')
            await self.sign_out()
            raise
        try:
            self._session = _ProviderSession(
                id_token=data['id_token'],
                refresh_token=data.get('refresh_token',
                                       session.refresh_token),
                expires_at=_expires_at(data['id_token'],
                                       data.get('expires_in'))
            )
        except (KeyError, TypeError) as e:
            raise _incomplete(e) from e
        return self._session.id_token

    async def close(self) -> None:
        await self._client.aclose()


def _incomplete(e: Exception) -> ServerError:
    logger.warning('Identity provider response lacks %s', e)
    return ServerError('Identity provider returned an incomplete response')


def _account_from(data: dict) -> Account:
    """Build an :class:`.Account` from an Identity Toolkit user record."""
    try:
        return Account(
            uid=data['localId'],
            email=data.get('email', ''),
            display_name=data.get('displayName', '') or '',
            email_verified=bool(data.get('emailVerified', False))
        )
    except (KeyError, AttributeError, TypeError) as e:
        raise _incomplete(e) from e
