"""Selects the credential, if any, to attach to an outbound call."""

from datetime import datetime
from typing import Optional

from pytz import UTC

import logging

from .. import domain
from .store import CredentialStore

logger = logging.getLogger(__name__)


class PrecedenceResolver(object):
    """
    Resolves the active credential.

    The order is fixed:

    1. A stored local credential is used verbatim, even if it is stale.
       Invalidating it is the job of the response interceptor.
    2. Otherwise, if the identity provider has an active session, a fresh
       federated credential is derived from it. This may suspend, and may
       fail (e.g. if the provider session expired).
    3. Otherwise there is no credential, and the call goes out anonymous.
    """

    def __init__(self, store: CredentialStore, provider: object = None
                 ) -> None:
        self.store = store
        self.provider = provider

    async def resolve(self) -> Optional[domain.Credential]:
        """
        Get the credential for the next outbound call.

        Raises
        ------
        :class:`.AuthError`
            If a federated credential was needed and could not be derived.

        """
        credential = self.store.read()
        if credential is not None:
            return credential
        if self.provider is None or self.provider.current_account is None:
            return None
        token = await self.provider.get_id_token()
        logger.debug('Derived federated credential')
        return domain.Credential(token, domain.CredentialSource.FEDERATED,
                                 issued_at=datetime.now(tz=UTC))
