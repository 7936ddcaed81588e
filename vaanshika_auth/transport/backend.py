"""Client for the first-party backend's authentication endpoints."""

from datetime import datetime
from typing import Any, NamedTuple, Optional
from urllib.parse import quote

import httpx
from pytz import UTC

import logging

from .. import domain
from ..credentials import CredentialStore, PrecedenceResolver
from ..exceptions import InvalidCredentials, MalformedRequest, \
    ServerError, Unauthorized
from .interceptors import RequestInterceptor, ResponseInterceptor, \
    CREDENTIAL_OVERRIDE
from .payloads import parse_login, parse_user

logger = logging.getLogger(__name__)


class LoginResult(NamedTuple):
    """What the backend handed back for a login."""

    credential: Optional[domain.Credential]
    """The local credential; ``None`` if the backend issued none."""

    account: Optional[domain.Account]


class BackendClient(object):
    """
    Talks to the backend through the interceptor pipeline.

    Every call goes through :class:`.RequestInterceptor` and
    :class:`.ResponseInterceptor`. Failures are raised as members of the
    error taxonomy; callers never see ``httpx`` exceptions.
    """

    def __init__(self, base_url: str, store: CredentialStore,
                 resolver: PrecedenceResolver,
                 transport: Optional[httpx.AsyncBaseTransport] = None
                 ) -> None:
        """
        Create the HTTP client and install the interceptors.

        Parameters
        ----------
        base_url : str
            Base URL of the backend API, e.g. ``http://localhost:5000/api``.
        store : :class:`.CredentialStore`
        resolver : :class:`.PrecedenceResolver`
        transport : :class:`httpx.AsyncBaseTransport`
            Alternate transport, mainly for testing.

        """
        self.requests = RequestInterceptor(resolver)
        self.responses = ResponseInterceptor(store)
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={'Content-Type': 'application/json'},
            event_hooks={'request': [self.requests],
                         'response': [self.responses]},
            transport=transport
        )
        logger.debug('New backend client for %s', base_url)

    async def request(self, method: str, path: str,
                      payload: Optional[dict] = None,
                      credential: Optional[domain.Credential] = None
                      ) -> httpx.Response:
        """
        Make a call to the backend.

        Parameters
        ----------
        method : str
        path : str
            Relative to the base URL.
        payload : dict
            JSON body.
        credential : :class:`.Credential`
            Send this credential instead of resolving one.

        Returns
        -------
        :class:`httpx.Response`
            Only successful responses are returned.

        Raises
        ------
        :class:`.AuthError`

        """
        extensions = {CREDENTIAL_OVERRIDE: credential} if credential else None
        try:
            response = await self._client.request(
                method, path, json=payload, extensions=extensions
            )
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            raise MalformedRequest(f'Bad request URL: {e}') from e
        except httpx.RequestError as e:
            raise self.responses.network_failure(e) from e
        if response.is_error:
            raise self.responses.error_for(response)
        return response

    async def register(self, uid: str, email: str, display_name: str
                       ) -> None:
        """Create the backend record for a new provider account."""
        await self.request('POST', 'auth/register', {
            'uid': uid,
            'email': email,
            'displayName': display_name
        })

    async def login(self, email: str, password: str) -> LoginResult:
        """
        Authenticate with e-mail and password.

        Raises
        ------
        :class:`.InvalidCredentials`
            The backend rejected the credentials.
        :class:`.EmailNotVerified`
            The backend refused to issue a session for an unverified
            account.

        """
        try:
            response = await self.request('POST', 'auth/login', {
                'email': email,
                'password': password
            })
        except Unauthorized as e:
            raise InvalidCredentials(e.message, status_code=401) from e
        payload = parse_login(_json(response))
        if not payload.token or payload.user is None:
            raise ServerError('Login response lacks token or user')
        return LoginResult(_local(payload.token), payload.user.to_account())

    async def google_login(self, id_token: str) -> LoginResult:
        """Exchange a federated id token for a local credential."""
        response = await self.request('POST', 'auth/google-login',
                                      {'idToken': id_token})
        payload = parse_login(_json(response))
        return LoginResult(
            _local(payload.token) if payload.token else None,
            payload.user.to_account() if payload.user else None
        )

    async def logout(self, credential: Optional[domain.Credential] = None
                     ) -> None:
        """End the backend session of ``credential`` (default: active)."""
        await self.request('POST', 'auth/logout', credential=credential)

    async def forgot_password(self, email: str) -> None:
        await self.request('POST', 'auth/forgot-password', {'email': email})

    async def reset_password(self, token: str, password: str) -> None:
        await self.request('POST', 'auth/reset-password',
                           {'token': token, 'password': password})

    async def resend_verification(self, email: str) -> None:
        await self.request('POST', 'auth/resend-verification',
                           {'email': email})

    async def verify_email(self, token: str) -> None:
        await self.request('GET', f'auth/verify-email/{quote(token, safe="")}')

    async def me(self) -> domain.Account:
        """Get the account of the active credential."""
        response = await self.request('GET', 'auth/me')
        return parse_user(_json(response))

    async def close(self) -> None:
        await self._client.aclose()


def _json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise ServerError('Backend returned a non-JSON body') from e


def _local(token: str) -> domain.Credential:
    return domain.Credential(token, domain.CredentialSource.LOCAL,
                             issued_at=datetime.now(tz=UTC))
