"""
Client-side authentication and session management.

Keeps one authoritative :class:`.SessionState` for the application, holds
the local credential issued by the backend, and attaches the right bearer
credential to every backend call.

.. code-block:: python

   from vaanshika_auth import create_session_controller, setup_logger

   setup_logger()  # JSON records on stderr; see LOG_LEVEL, LOG_JSON
   controller = create_session_controller(popup=open_google_popup)
   await controller.start()
   controller.subscribe(render)
   try:
       await controller.login(email, password)
   except EmailNotVerified as e:
       offer_resend(e.account)

"""

from .domain import Account, Credential, CredentialSource, SessionState, \
    SessionStatus, VerificationRequest
from .exceptions import AuthError, DuplicateAccount, WeakCredential, \
    InvalidCredentials, EmailNotVerified, TooManyRequests, Unauthorized, \
    Forbidden, NotFound, ServerError, NetworkFailure, MalformedRequest, \
    InvalidState, user_message
from .session import SessionController
from .factory import create_session_controller
from .app_logging import setup_logger
