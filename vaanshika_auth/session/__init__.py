"""The session state machine. See :mod:`.controller`."""

from .controller import SessionController, StateListener
