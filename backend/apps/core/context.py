"""GraphQL context and per-request session handling."""
from dataclasses import dataclass, field
from typing import Callable

from django.http import HttpRequest

from apps.core.auth import get_user_from_token
from apps.businesses.models import User

SessionListener = Callable[["Session"], None]


class Session:
    """Authenticated session for a single request.

    Passed explicitly through the request context instead of living in a
    module-level store. Listeners are notified on sign-in and sign-out.
    """

    def __init__(self, user: User | None = None):
        self._user = user
        self._listeners: list[SessionListener] = []

    @property
    def user(self) -> User | None:
        return self._user

    @property
    def business(self):
        if self._user is None:
            return None
        return self._user.business

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener and return a callable that removes it again."""
        self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: SessionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def sign_in(self, user: User) -> None:
        self._user = user
        self._notify()

    def sign_out(self) -> None:
        self._user = None
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)


@dataclass
class Context:
    """GraphQL request context."""

    request: HttpRequest
    session: Session = field(default_factory=Session)

    @property
    def user(self) -> User | None:
        return self.session.user

    @property
    def is_authenticated(self) -> bool:
        return self.session.is_authenticated


def get_context(request: HttpRequest) -> Context:
    """Extract context from request, including authenticated user."""
    user = None

    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:]
        user = get_user_from_token(token)

    return Context(request=request, session=Session(user))
