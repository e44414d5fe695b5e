"""Route-protection decisions for the web frontend.

The frontend asks these functions what to do with a page request and
gets back a `GuardDecision`. Two layers exist:

- `edge_check` runs before a page renders and only looks at whether the
  access-token cookie is *present*. It redirects signed-in visitors away
  from the login/register pages and never blocks protected pages.
- `protected_guard` / `public_guard` run against the client's
  `SessionState` and are the authoritative gate for protected pages.

`SessionStore` holds that session state explicitly; callers create one
per browser session and pass it to whatever needs it.
"""

import enum
import logging
from dataclasses import dataclass, replace
from typing import Callable, Mapping, Optional

from .auth import ACCESS_COOKIE

logger = logging.getLogger("app.guards")

PROTECTED_ROUTES = ("/dashboard", "/admin", "/profile", "/settings")
AUTH_PAGES = ("/auth/login", "/auth/register")
EDGE_SKIP_PREFIXES = ("/api", "/_next")

LOGIN_PATH = "/auth/login"
DEFAULT_LANDING_PATH = "/dashboard"

INACTIVE_NOTICE = {
    "title": "Account Inactive",
    "message": "Your account has been deactivated. Please contact an administrator.",
}


class GuardAction(str, enum.Enum):
    RENDER = "render"
    FALLBACK = "fallback"
    REDIRECT = "redirect"
    INACTIVE = "inactive"
    PASS = "pass"


@dataclass(frozen=True)
class GuardDecision:
    action: GuardAction
    location: Optional[str] = None
    notice: Optional[dict] = None

    @property
    def shows_fallback(self) -> bool:
        """Whether the page shows its fallback while this decision applies."""
        return self.action in (GuardAction.FALLBACK, GuardAction.REDIRECT)


@dataclass(frozen=True)
class SessionState:
    user: Optional[dict] = None
    is_loading: bool = True

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None


Listener = Callable[[SessionState], None]


class SessionStore:
    """Observable holder of one client session's auth state.

    Listeners are called with the new `SessionState` after every change.
    """

    def __init__(self, state: Optional[SessionState] = None):
        self._state = state or SessionState()
        self._listeners: list[Listener] = []

    def snapshot(self) -> SessionState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register `listener`; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, state: SessionState) -> None:
        self._state = state
        for listener in list(self._listeners):
            listener(state)

    def set_loading(self, loading: bool = True) -> None:
        self._set(replace(self._state, is_loading=loading))

    def set_user(self, user: Optional[dict]) -> None:
        """Record the profile returned by the API (or None when signed out)."""
        self._set(SessionState(user=user, is_loading=False))

    def clear(self) -> None:
        self.set_user(None)


def _matches(path: str, prefixes) -> bool:
    return any(path.startswith(p) for p in prefixes)


def is_protected_route(path: str) -> bool:
    return _matches(path, PROTECTED_ROUTES)


def edge_check(path: str, cookies: Mapping[str, str]) -> GuardDecision:
    """Coarse, cookie-presence-only redirect for the auth pages.

    Presence of the access cookie is not proof of a valid token, so this
    never enforces protected routes; it only keeps signed-in visitors off
    the login and register pages.
    """
    if _matches(path, EDGE_SKIP_PREFIXES):
        return GuardDecision(GuardAction.PASS)
    has_cookie = bool(cookies.get(ACCESS_COOKIE))
    if has_cookie and _matches(path, AUTH_PAGES):
        logger.debug("edge redirect path=%s", path)
        return GuardDecision(GuardAction.REDIRECT, DEFAULT_LANDING_PATH)
    if not has_cookie and is_protected_route(path):
        logger.debug("edge deferring protected route to client path=%s", path)
    return GuardDecision(GuardAction.PASS)


def protected_guard(state: SessionState, redirect_to: str = LOGIN_PATH) -> GuardDecision:
    """Decide what a protected page shows for the given session state."""
    if state.is_loading:
        return GuardDecision(GuardAction.FALLBACK)
    if not state.is_authenticated:
        return GuardDecision(GuardAction.REDIRECT, redirect_to)
    if not state.user.get("isActive", True):
        return GuardDecision(GuardAction.INACTIVE, notice=INACTIVE_NOTICE)
    return GuardDecision(GuardAction.RENDER)


def public_guard(state: SessionState, redirect_to: str = DEFAULT_LANDING_PATH) -> GuardDecision:
    """Decide what a signed-out-only page (login, register) shows."""
    if state.is_loading:
        return GuardDecision(GuardAction.FALLBACK)
    if state.is_authenticated:
        return GuardDecision(GuardAction.REDIRECT, redirect_to)
    return GuardDecision(GuardAction.RENDER)
