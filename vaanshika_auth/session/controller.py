"""
The session controller: the only writer of :class:`.SessionState`.

Every operation that changes the session takes a new epoch when it is
triggered. When its awaited work completes, the result is applied only if
no newer operation was triggered in the meantime; otherwise it is
discarded, and anything it acquired along the way (a backend session, a
provider session) is released. The most recently triggered action always
wins, which is what makes :meth:`SessionController.logout` a reliable way
to cancel a login that is still in flight.

State changes happen only in the synchronous steps between awaits, so
listeners never observe a half-applied transition.
"""

import asyncio
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator, List, Optional

from pytz import UTC

import logging

from .. import forms
from ..credentials import CredentialStore
from ..domain import Account, Credential, SessionState, SessionStatus, \
    VerificationRequest
from ..exceptions import AuthError, EmailNotVerified, InvalidState, \
    MalformedRequest, NotFound, Unauthorized, Unavailable, \
    CredentialPersistenceFailed, CredentialDeletionFailed, user_message
from ..provider import IdentityProvider
from ..transport import BackendClient, LoginResult

logger = logging.getLogger(__name__)

StateListener = Callable[[SessionState], None]


class SessionController(object):
    """
    Drives registration, login, logout and verification.

    Parameters
    ----------
    store : :class:`.CredentialStore`
        The one store shared with the interceptors.
    provider : :class:`.IdentityProvider`
    backend : :class:`.BackendClient`
    cooldown : int
        Seconds between verification resends, for display.

    """

    def __init__(self, store: CredentialStore, provider: IdentityProvider,
                 backend: BackendClient, cooldown: int = 60) -> None:
        self.store = store
        self.provider = provider
        self.backend = backend
        self.cooldown = cooldown
        self.last_verification: Optional[VerificationRequest] = None
        """The last verification e-mail that the backend accepted."""

        self._state = SessionState.anonymous()
        self._listeners: List[StateListener] = []
        self._epoch = 0
        self._inflight = 0
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def state(self) -> SessionState:
        """The current session state."""
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Get notified of every state change.

        The listener is called right away with the current state.

        Returns
        -------
        callable
            Call it to unsubscribe.

        """
        self._listeners.append(listener)
        listener(self._state)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def cooldown_remaining(self) -> int:
        """Seconds until another verification resend is worth offering."""
        if self.last_verification is None:
            return 0
        return self.last_verification.cooldown_remaining(self.cooldown)

    # Lifecycle.

    async def start(self) -> SessionState:
        """
        Restore the session from the persisted credential, if any.

        Afterwards the controller follows the provider's sign-in and
        sign-out notifications until :meth:`shutdown`.
        """
        with self._operation() as epoch:
            loop = asyncio.get_running_loop()
            try:
                credential = await loop.run_in_executor(None, self.store.load)
            except Unavailable as e:
                logger.error('Could not load persisted credential: %s', e)
                credential = None
            if credential is not None and self._is_current(epoch):
                await self._restore(epoch)
        if self._unsubscribe is None:
            self._unsubscribe = \
                self.provider.on_auth_state_changed(self._reconcile)
        return self._state

    async def _restore(self, epoch: int) -> None:
        self._set_state(SessionState.authenticating())
        try:
            account = await self.backend.me()
        except Unauthorized:
            # The response interceptor already dropped the credential.
            logger.info('Persisted credential was rejected')
            if self._is_current(epoch):
                self._set_state(SessionState.anonymous())
        except AuthError as e:
            logger.warning('Could not restore session: %s', e)
            if self._is_current(epoch):
                self._set_state(SessionState.failed(_reason(e)))
        else:
            if self._is_current(epoch):
                self._set_state(SessionState.authenticated(account))

    async def shutdown(self) -> None:
        """Stop following the provider and release HTTP clients."""
        self._epoch += 1
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        await self.backend.close()
        await self.provider.close()

    # Operations.

    async def register(self, email: str, password: str,
                       display_name: str) -> Account:
        """
        Create an account. Never yields an active session.

        The provider account is created, named and sent a verification
        e-mail, then registered with the backend. The provider session is
        signed out again whatever happens.

        Returns
        -------
        :class:`.Account`
            The new, unverified account.

        Raises
        ------
        :class:`.InvalidState`
            If a session is active or a local credential is held. Log out
            first.
        :class:`.DuplicateAccount`
        :class:`.WeakCredential`
        :class:`.AuthError`

        """
        if self._state.is_authenticated or self.store.read() is not None:
            raise InvalidState("Can't register while logged in")
        with self._operation() as epoch:
            self._set_state(SessionState.authenticating())
            account: Optional[Account] = None
            try:
                forms.validate(forms.RegistrationForm, email=email,
                               password=password, display_name=display_name)
                display_name = display_name.strip()
                account = await self.provider.create_account(email, password)
                account = await self.provider.update_profile(display_name)
                await self.provider.send_verification_email()
                await self.backend.register(account.uid, email, display_name)
            except AuthError as e:
                logger.info('Registration failed: %s', e)
                await self._release_provider(account)
                if self._is_current(epoch):
                    self._set_state(SessionState.failed(_reason(e)))
                raise
            await self._release_provider(account)
            if self._is_current(epoch):
                self._set_state(SessionState.anonymous())
            logger.info('Registered account %s', account.uid)
            return account

    async def login(self, email: str, password: str) -> SessionState:
        """
        Log in with e-mail and password.

        An unverified account never holds a session: the backend session
        issued for it is ended right away, and the state becomes
        ``PENDING_VERIFICATION``.

        Raises
        ------
        :class:`.EmailNotVerified`
            Carries the account, so that a resend can be offered.
        :class:`.InvalidCredentials`
        :class:`.AuthError`

        """
        with self._operation() as epoch:
            self._set_state(SessionState.authenticating())
            try:
                forms.validate(forms.LoginForm, email=email,
                               password=password)
                result = await self.backend.login(email, password)
            except EmailNotVerified as e:
                return self._pending(epoch, e.account, email)
            except AuthError as e:
                logger.info('Login failed: %s', e)
                if not self._is_current(epoch):
                    return self._state
                self._set_state(SessionState.failed(_reason(e)))
                raise

            if not self._is_current(epoch):
                logger.debug('Discarding superseded login')
                await self._revoke(result.credential)
                return self._state
            if not result.account.email_verified:
                await self._revoke(result.credential)
                return self._pending(epoch, result.account, email)
            self._store(result.credential)
            self._set_state(SessionState.authenticated(result.account))
            logger.info('Logged in %s', result.account.uid)
            return self._state

    def _pending(self, epoch: int, account: Optional[Account],
                 email: str) -> SessionState:
        if not self._is_current(epoch):
            return self._state
        account = account or Account(uid='', email=email)
        self._set_state(SessionState.pending_verification(account))
        raise EmailNotVerified(user_message(EmailNotVerified()),
                               account=account)

    async def login_with_federated_provider(self) -> SessionState:
        """
        Log in through the provider's interactive flow.

        The provider's id token is exchanged with the backend for a local
        credential. If the backend does not issue one, calls are made with
        federated credentials derived from the provider session. There is
        no verification gate, and a pending account is simply replaced.
        """
        with self._operation() as epoch:
            self._set_state(SessionState.authenticating())
            account: Optional[Account] = None
            try:
                account = await self.provider.sign_in_with_popup()
                id_token = await self.provider.get_id_token()
                try:
                    result = await self.backend.google_login(id_token)
                except NotFound:
                    logger.info('No federated exchange on the backend')
                    result = LoginResult(None, None)
            except AuthError as e:
                logger.info('Federated login failed: %s', e)
                await self._release_provider(account)
                if not self._is_current(epoch):
                    return self._state
                self._set_state(SessionState.failed(_reason(e)))
                raise

            if not self._is_current(epoch):
                logger.debug('Discarding superseded federated login')
                await self._revoke(result.credential)
                await self._release_provider(account)
                return self._state
            if result.credential is not None:
                self._store(result.credential)
            else:
                self._drop_local()
            account = result.account or account
            self._set_state(SessionState.authenticated(account))
            logger.info('Federated login for %s', account.uid)
            return self._state

    async def logout(self) -> SessionState:
        """
        End the session. Always leaves ``ANONYMOUS`` and never raises.

        Any operation still in flight is superseded.
        """
        with self._operation():
            credential = self.store.read()
            self._drop_local()
            self._set_state(SessionState.anonymous())
            if self.provider.current_account is not None:
                try:
                    await self.provider.sign_out()
                except AuthError as e:
                    logger.warning('Provider sign-out failed: %s', e)
            await self._revoke(credential)
            return self._state

    async def resend_verification(self, email: Optional[str] = None
                                  ) -> VerificationRequest:
        """
        Ask the backend to send another verification e-mail.

        Parameters
        ----------
        email : str
            Defaults to the address of the pending account.

        Raises
        ------
        :class:`.InvalidState`
            If no account is pending verification.
        :class:`.TooManyRequests`
            Within the cooldown window. The state does not change.

        """
        if not self._state.is_pending_verification:
            raise InvalidState('No account is awaiting verification')
        email = email or self._state.account.email
        forms.validate(forms.ResendVerificationForm, email=email)
        await self.backend.resend_verification(email)
        self.last_verification = VerificationRequest(email,
                                                     datetime.now(tz=UTC))
        logger.info('Verification e-mail resent')
        return self.last_verification

    async def reset_password(self, email: str) -> None:
        """Ask the backend to send a password reset e-mail."""
        forms.validate(forms.PasswordResetForm, email=email)
        await self.backend.forgot_password(email)

    async def complete_password_reset(self, token: str,
                                      new_password: str) -> None:
        """Set a new password with the token from the reset e-mail."""
        forms.validate(forms.NewPasswordForm, token=token,
                       password=new_password)
        await self.backend.reset_password(token, new_password)

    async def verify_email(self, token: str) -> None:
        """Confirm an e-mail address with the token from the e-mail link."""
        if not token:
            raise MalformedRequest('Verification token is required')
        await self.backend.verify_email(token)

    async def refresh_account(self) -> Account:
        """
        Fetch the authenticated account again from the backend.

        Raises
        ------
        :class:`.InvalidState`
            If there is no authenticated session.
        :class:`.Unauthorized`
            The session is no longer valid; the state becomes ``ANONYMOUS``.

        """
        if not self._state.is_authenticated:
            raise InvalidState('Not logged in')
        epoch = self._epoch
        try:
            account = await self.backend.me()
        except Unauthorized:
            if self._is_current(epoch) and self._state.is_authenticated:
                self._set_state(SessionState.anonymous())
            raise
        if self._is_current(epoch) and self._state.is_authenticated:
            self._set_state(SessionState.authenticated(account))
        return account

    # Internals.

    @contextmanager
    def _operation(self) -> Iterator[int]:
        """Take a new epoch for a state-changing operation."""
        self._epoch += 1
        self._inflight += 1
        try:
            yield self._epoch
        finally:
            self._inflight -= 1

    def _is_current(self, epoch: int) -> bool:
        return epoch == self._epoch

    def _set_state(self, state: SessionState) -> None:
        if state == self._state:
            return
        logger.debug('Session %s -> %s', self._state.status.value,
                     state.status.value)
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception('Session state listener failed')

    def _reconcile(self, account: Optional[Account]) -> None:
        """Follow provider sign-ins and sign-outs made outside operations."""
        if self._inflight or self.store.read() is not None:
            return
        if account is not None and \
                self._state.status is SessionStatus.ANONYMOUS:
            logger.info('Restoring federated session for %s', account.uid)
            self._set_state(SessionState.authenticated(account))
        elif account is None and self._state.is_authenticated:
            logger.info('Federated session ended')
            self._set_state(SessionState.anonymous())

    def _store(self, credential: Credential) -> None:
        try:
            self.store.write(credential)
        except CredentialPersistenceFailed as e:
            # Still active for this process.
            logger.error('Could not persist credential: %s', e)

    def _drop_local(self) -> None:
        try:
            self.store.clear()
        except CredentialDeletionFailed as e:
            logger.error('Could not remove persisted credential: %s', e)

    async def _revoke(self, credential: Optional[Credential]) -> None:
        """End the backend session of ``credential``, best-effort."""
        if credential is None:
            return
        try:
            await self.backend.logout(credential=credential)
        except AuthError as e:
            logger.warning('Backend logout failed: %s', e)

    async def _release_provider(self, account: Optional[Account]) -> None:
        """Sign out of the provider, if it is still signed in as ``account``."""
        current = self.provider.current_account
        if account is None or current is None or current.uid != account.uid:
            return
        try:
            await self.provider.sign_out()
        except AuthError as e:
            logger.warning('Provider sign-out failed: %s', e)


def _reason(error: AuthError) -> str:
    return error.message or user_message(error)
