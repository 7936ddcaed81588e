"""
Outbound calls to the backend, and the interceptor pipeline around them.

See :mod:`.interceptors` and :mod:`.backend`.
"""

from .interceptors import RequestInterceptor, ResponseInterceptor, Outcome
from .backend import BackendClient, LoginResult
