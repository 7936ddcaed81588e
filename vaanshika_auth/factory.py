"""Application factory for the session controller."""

import os
from typing import Any, Optional

import logging

from . import config
from .credentials import CredentialStore, PrecedenceResolver, get_backend, \
    stored_secret
from .provider import IdentityProvider, IdentityToolkitProvider
from .session import SessionController
from .transport import BackendClient

logger = logging.getLogger(__name__)


def create_session_controller(provider: Optional[IdentityProvider] = None,
                              **overrides: Any) -> SessionController:
    """
    Wire a :class:`.SessionController` from :mod:`.config`.

    Parameters
    ----------
    provider : :class:`.IdentityProvider`
        Defaults to an :class:`.IdentityToolkitProvider` for
        ``FIREBASE_API_KEY``.
    overrides
        Any setting from :mod:`.config`, by name, e.g.
        ``BACKEND_URL='http://localhost:8000/api'``. ``popup`` and
        ``transport`` are passed on to the adapter and the backend client.

    """
    def get(name: str) -> Any:
        return overrides.get(name, getattr(config, name))

    backend = get_backend(
        get('CREDENTIAL_BACKEND'),
        path=get('CREDENTIAL_PATH'),
        host=get('REDIS_HOST'),
        port=int(get('REDIS_PORT')),
        db=int(get('REDIS_DATABASE')),
        fake=_flag(get('REDIS_FAKE'))
    )
    secret = get('CREDENTIAL_SECRET')
    if not secret:
        secret = stored_secret(get('CREDENTIAL_SECRET_PATH') or os.path.join(
            os.path.dirname(os.path.abspath(get('CREDENTIAL_PATH'))),
            'auth_secret'
        ))
    store = CredentialStore(backend, get('CREDENTIAL_KEY'), secret)
    if provider is None:
        provider = IdentityToolkitProvider(
            get('FIREBASE_API_KEY'),
            popup=overrides.get('popup'),
            identity_url=get('IDENTITY_TOOLKIT_URL'),
            token_url=get('SECURE_TOKEN_URL')
        )
    resolver = PrecedenceResolver(store, provider)
    client = BackendClient(get('BACKEND_URL'), store, resolver,
                           transport=overrides.get('transport'))
    logger.debug('Session controller for %s with %s credential backend',
                 get('BACKEND_URL'), get('CREDENTIAL_BACKEND'))
    return SessionController(store, provider, client,
                             cooldown=int(get('VERIFICATION_COOLDOWN')))


def _flag(value: Any) -> bool:
    """Settings from the environment are strings like ``'0'`` or ``'1'``."""
    if isinstance(value, str):
        return bool(int(value or '0'))
    return bool(value)
