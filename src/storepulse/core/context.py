"""Request context shared with the HTTP-aware collectors."""

from contextvars import ContextVar, Token

from storepulse.core.models import RequestContext

_current_request: ContextVar[RequestContext | None] = ContextVar(
    "storepulse_current_request", default=None
)


def set_current_request(request: RequestContext | None) -> Token:
    """Bind request to the current context; pass the token to reset it."""
    return _current_request.set(request)


def get_current_request() -> RequestContext | None:
    return _current_request.get()


def reset_current_request(token: Token) -> None:
    _current_request.reset(token)
