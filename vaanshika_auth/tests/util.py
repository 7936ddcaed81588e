"""In-memory stand-ins for the backend and the identity provider."""

import asyncio
import json
import itertools
from typing import Dict, List, Optional, Tuple
from urllib.parse import unquote

import httpx

from ..domain import Account
from ..exceptions import DuplicateAccount, InvalidCredentials, Unauthorized
from ..provider import IdentityProvider

BASE_URL = 'http://backend.test/api'


class FakeBackend(object):
    """
    The backend's ``auth/*`` endpoints, served through a mock transport.

    Every request is recorded in :attr:`calls` as ``(method, path,
    authorization header)``.
    """

    def __init__(self, provider: Optional['FakeIdentityProvider'] = None,
                 cooldown: int = 60) -> None:
        self.provider = provider
        """Passwords of registered users are checked against this."""
        self.users: Dict[str, dict] = {}
        self.tokens: Dict[str, str] = {}
        """Active bearer token -> e-mail."""
        self.calls: List[Tuple[str, str, Optional[str]]] = []
        self.resends: Dict[str, int] = {}
        self.cooldown = cooldown
        self.reject_unverified = False
        """Answer 403 ``email-not-verified`` instead of a session."""
        self.federated_exchange = True
        """Whether ``auth/google-login`` issues local tokens."""
        self.fail_logout = False
        self.down = False
        self.held: Dict[str, asyncio.Event] = {}
        self.waiting: List[str] = []
        self._ids = itertools.count(1)
        self.transport = httpx.MockTransport(self.handle)

    def add_user(self, email: str, password: str, uid: Optional[str] = None,
                 verified: bool = False, name: str = '') -> dict:
        uid = uid or f'user{next(self._ids)}'
        self.users[email] = {'uid': uid, 'email': email, 'password': password,
                             'displayName': name, 'emailVerified': verified}
        return self.users[email]

    def issue(self, email: str) -> str:
        token = f'local-{next(self._ids)}-{email}'
        self.tokens[token] = email
        return token

    def last_authorization(self, path: str) -> Optional[str]:
        for method, call_path, authorization in reversed(self.calls):
            if call_path == path:
                return authorization
        return None

    def _public(self, user: dict) -> dict:
        return {k: v for k, v in user.items() if k != 'password'}

    def hold(self, path: str) -> None:
        """Make calls to ``path`` wait until :meth:`release`."""
        self.held[path] = asyncio.Event()

    def release(self, path: str) -> None:
        self.held.pop(path).set()

    def _password(self, user: dict) -> str:
        if user['password'] or self.provider is None:
            return user['password']
        return self.provider.accounts.get(user['email'], (None, ''))[1]

    async def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path[len('/api/'):]
        authorization = request.headers.get('Authorization')
        self.calls.append((request.method, path, authorization))
        if self.down:
            raise httpx.ConnectError('Connection refused', request=request)
        if path in self.held:
            self.waiting.append(path)
            await self.held[path].wait()
            self.waiting.remove(path)
        body = json.loads(request.content) if request.content else {}
        token = authorization.split(' ', 1)[1] if authorization else None

        if path == 'auth/register':
            if body['email'] in self.users:
                return httpx.Response(409, json={
                    'message': 'Email already registered',
                    'code': 'duplicate-account'
                })
            self.add_user(body['email'], '', uid=body['uid'],
                          name=body['displayName'])
            return httpx.Response(201, json={'message': 'Registered'})

        if path == 'auth/login':
            user = self.users.get(body['email'])
            if user is None or self._password(user) != body['password']:
                return httpx.Response(401, json={
                    'message': 'Invalid credentials'
                })
            if not user['emailVerified'] and self.reject_unverified:
                return httpx.Response(403, json={
                    'message': 'Please verify your email',
                    'code': 'email-not-verified',
                    'user': self._public(user)
                })
            return httpx.Response(200, json={
                'token': self.issue(user['email']),
                'user': self._public(user)
            })

        if path == 'auth/google-login':
            if not self.federated_exchange:
                return httpx.Response(404, json={'message': 'Not found'})
            if not body.get('idToken'):
                return httpx.Response(400, json={'message': 'No id token'})
            email = body['idToken'].split(':', 1)[-1]
            user = self.users.get(email) or \
                self.add_user(email, '', verified=True)
            return httpx.Response(200, json={
                'token': self.issue(email),
                'user': self._public(user)
            })

        if path == 'auth/logout':
            if self.fail_logout:
                return httpx.Response(500, json={'message': 'Logout failed'})
            if token not in self.tokens:
                return httpx.Response(401, json={'message': 'Invalid token'})
            del self.tokens[token]
            return httpx.Response(200, json={'message': 'Logged out'})

        if path == 'auth/me':
            email = self.tokens.get(token)
            if email is None and token and token.startswith('fed:'):
                email = token[len('fed:'):]
                if email not in self.users:
                    self.add_user(email, '', verified=True)
            if email is None:
                return httpx.Response(401, json={'message': 'Invalid token'})
            return httpx.Response(200, json={
                'user': self._public(self.users[email])
            })

        if path == 'auth/resend-verification':
            count = self.resends.get(body['email'], 0)
            self.resends[body['email']] = count + 1
            if count and self.cooldown:
                return httpx.Response(429, json={
                    'message': 'Please wait before requesting another email'
                })
            return httpx.Response(200, json={'message': 'Sent'})

        if path == 'auth/forgot-password':
            return httpx.Response(200, json={'message': 'Sent'})

        if path == 'auth/reset-password':
            if body['token'] != 'good-reset-token':
                return httpx.Response(400, json={'message': 'Invalid token'})
            return httpx.Response(200, json={'message': 'Password reset'})

        if path.startswith('auth/verify-email/'):
            email = unquote(path[len('auth/verify-email/'):])
            if email not in self.users:
                return httpx.Response(400, json={'message': 'Invalid token'})
            self.users[email]['emailVerified'] = True
            return httpx.Response(200, json={'message': 'Verified'})

        return httpx.Response(404, json={'message': 'Not found'})


class FakeIdentityProvider(IdentityProvider):
    """
    An identity provider that keeps its accounts in memory.

    ``popup_email`` is the Google account that the interactive flow signs
    in; set it to ``None`` to simulate the user closing the popup.
    """

    def __init__(self, popup_email: Optional[str] = 'gia@gmail.com') -> None:
        super(FakeIdentityProvider, self).__init__()
        self.accounts: Dict[str, Tuple[Account, str]] = {}
        self.popup_email = popup_email
        self.verification_emails: List[str] = []
        self.reset_emails: List[str] = []
        self.expired = False
        """Make :meth:`get_id_token` fail as for an expired session."""
        self.closed = False
        self._ids = itertools.count(1)

    async def create_account(self, email: str, password: str) -> Account:
        if email in self.accounts:
            raise DuplicateAccount('EMAIL_EXISTS', status_code=400)
        account = Account(uid=f'fb{next(self._ids)}', email=email)
        self.accounts[email] = (account, password)
        self._set_current(account)
        return account

    async def sign_in(self, email: str, password: str) -> Account:
        if email not in self.accounts or self.accounts[email][1] != password:
            raise InvalidCredentials('INVALID_LOGIN_CREDENTIALS')
        self._set_current(self.accounts[email][0])
        return self.accounts[email][0]

    async def sign_in_with_popup(self) -> Account:
        if self.popup_email is None:
            raise InvalidCredentials('Sign-in popup was closed')
        account = Account(uid=f'g-{self.popup_email}',
                          email=self.popup_email, display_name='Gia',
                          email_verified=True)
        self._set_current(account)
        return account

    async def sign_out(self) -> None:
        self._set_current(None)

    async def send_verification_email(self) -> None:
        if self._current is None:
            raise Unauthorized('No active identity provider session')
        self.verification_emails.append(self._current.email)

    async def send_password_reset_email(self, email: str) -> None:
        self.reset_emails.append(email)

    async def update_profile(self, display_name: str) -> Account:
        if self._current is None:
            raise Unauthorized('No active identity provider session')
        account = self._current._replace(display_name=display_name)
        self.accounts[account.email] = (account,
                                        self.accounts[account.email][1])
        self._set_current(account)
        return account

    async def get_id_token(self, force_refresh: bool = False) -> str:
        if self._current is None:
            raise Unauthorized('No active identity provider session')
        if self.expired:
            await self.sign_out()
            raise Unauthorized('TOKEN_EXPIRED')
        return f'fed:{self._current.email}'

    async def close(self) -> None:
        self.closed = True
