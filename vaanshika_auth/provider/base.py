"""The contract of the federated identity provider boundary."""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional

import logging

from ..domain import Account

logger = logging.getLogger(__name__)

AuthStateListener = Callable[[Optional[Account]], None]


class IdentityProvider(ABC):
    """
    Wraps an external identity provider session.

    The adapter owns no durable state. It does hold the provider's current
    session (if any) for as long as the process lives, and notifies
    listeners whenever the signed-in account changes.
    """

    def __init__(self) -> None:
        self._current: Optional[Account] = None
        self._listeners: List[AuthStateListener] = []

    @property
    def current_account(self) -> Optional[Account]:
        """The account of the active provider session, if any."""
        return self._current

    def on_auth_state_changed(self, listener: AuthStateListener
                              ) -> Callable[[], None]:
        """
        Subscribe to sign-in/sign-out notifications.

        The listener is called once right away with the current account, and
        afterwards whenever the signed-in account changes.

        Returns
        -------
        callable
            Call it to unsubscribe.

        """
        self._listeners.append(listener)
        listener(self._current)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _set_current(self, account: Optional[Account]) -> None:
        previous, self._current = self._current, account
        if (previous is None) == (account is None) and \
                (account is None or previous.uid == account.uid):
            return
        for listener in list(self._listeners):
            try:
                listener(account)
            except Exception:
                logger.exception('Auth state listener failed')

    @abstractmethod
    async def create_account(self, email: str, password: str) -> Account:
        """Create an account and sign it in."""

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> Account:
        """Sign in with e-mail and password."""

    @abstractmethod
    async def sign_in_with_popup(self) -> Account:
        """Run the interactive federated sign-in flow."""

    @abstractmethod
    async def sign_out(self) -> None:
        """End the provider session. Safe to call without one."""

    @abstractmethod
    async def send_verification_email(self) -> None:
        """Send a verification e-mail to the signed-in account."""

    @abstractmethod
    async def send_password_reset_email(self, email: str) -> None:
        """Send a password reset e-mail."""

    @abstractmethod
    async def update_profile(self, display_name: str) -> Account:
        """Set the display name of the signed-in account."""

    @abstractmethod
    async def get_id_token(self, force_refresh: bool = False) -> str:
        """Get a fresh id token for the signed-in account."""

    async def close(self) -> None:
        """Release any resources held by the adapter."""
