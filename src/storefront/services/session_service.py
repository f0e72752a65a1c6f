from typing import Callable, Dict, List, Mapping, Optional
import logging
import threading
import time
import uuid

from storefront.core.exceptions import SessionStateError
from storefront.models.session import CartSession, SESSION_TOKEN_HEADER
from storefront.repositories.storage import ClientStorage
from storefront.utils.formatting_utils import FormattingUtils

logger = logging.getLogger(__name__)

SESSION_TOKEN_KEY = "storefront-cart-session-token"
USER_TOKEN_KEY = "storefront-user-token"

NEW_TOKEN_HEADER = "X-New-Token"
TOKEN_REFRESHED_HEADER = "X-Token-Refreshed"

LOGIN = "login"
LOGOUT = "logout"


def generate_session_token() -> str:
    """Anonymous cart token: session_<epoch ms>_<random>"""
    return f"session_{int(time.time() * 1000)}_{uuid.uuid4().hex[:16]}"


class SessionIdentity:
    """
    Decides which identity a cart request is addressed by

    Business Rules:
    - An authenticated user token wins; otherwise an anonymous session token
      is created lazily on first need and persisted
    - Never both on one request
    - Logout clears cart state (through listeners) before discarding the
      anonymous token, so the next anonymous period starts fresh
    - Login only switches identifiers; merging carts is the backend's job
    """

    def __init__(
        self,
        storage: ClientStorage,
        token_factory: Callable[[], str] = generate_session_token
    ):
        self.storage = storage
        self._token_factory = token_factory
        self._listeners: List[Callable[[str], None]] = []
        self._lock = threading.RLock()
        self.generated_session_token = False

    @property
    def user_token(self) -> Optional[str]:
        return self.storage.get(USER_TOKEN_KEY)

    @property
    def session_token(self) -> Optional[str]:
        """Stored anonymous token, without creating one"""
        return self.storage.get(SESSION_TOKEN_KEY)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_token)

    def subscribe(self, listener: Callable[[str], None]) -> None:
        """Register a callback receiving LOGIN or LOGOUT"""
        self._listeners.append(listener)

    def _ensure_session_token(self) -> str:
        with self._lock:
            token = self.storage.get(SESSION_TOKEN_KEY)
            if not token:
                token = self._token_factory()
                self.storage.set(SESSION_TOKEN_KEY, token)
                self.generated_session_token = True
                logger.info(f"Generated anonymous session token {FormattingUtils.mask_token(token)}")
            return token

    def current(self) -> CartSession:
        user_token = self.user_token
        if user_token:
            return CartSession(user_token=user_token)
        return CartSession(session_token=self._ensure_session_token())

    def request_headers(self) -> Dict[str, str]:
        return self.current().headers()

    def login(self, user_token: str) -> None:
        """Anonymous -> Authenticated"""
        if not user_token:
            raise SessionStateError("A user token is required to log in")
        with self._lock:
            current = self.user_token
            if current == user_token:
                return
            if current:
                raise SessionStateError("Already authenticated as another user; log out first")
            self.storage.set(USER_TOKEN_KEY, user_token)
        logger.info(f"Cart identity switched to user {FormattingUtils.mask_token(user_token)}")
        self._notify(LOGIN)

    def logout(self) -> None:
        """Authenticated -> Anonymous(new)"""
        # Listeners clear cart state first; the old anonymous token goes after
        self._notify(LOGOUT)
        with self._lock:
            self.storage.delete(USER_TOKEN_KEY)
            self.storage.delete(SESSION_TOKEN_KEY)
        logger.info("Logged out; a new anonymous session starts on next request")

    def absorb_response(self, headers: Mapping[str, str], body_session_token: Optional[str] = None) -> None:
        """Adopt tokens the backend hands back"""
        headers = headers or {}
        with self._lock:
            if self.is_authenticated:
                new_token = headers.get(NEW_TOKEN_HEADER)
                if new_token and str(headers.get(TOKEN_REFRESHED_HEADER, "")).lower() == "true":
                    self.storage.set(USER_TOKEN_KEY, new_token)
                    logger.info(f"User token refreshed by backend: {FormattingUtils.mask_token(new_token)}")
                return

            issued = headers.get(SESSION_TOKEN_HEADER) or body_session_token
            if issued and issued != self.storage.get(SESSION_TOKEN_KEY):
                self.storage.set(SESSION_TOKEN_KEY, issued)
                logger.info(f"Adopted backend session token {FormattingUtils.mask_token(issued)}")

    def describe(self) -> Dict[str, object]:
        """Masked identity state for debugging"""
        return {
            "authenticated": self.is_authenticated,
            "userToken": FormattingUtils.mask_token(self.user_token),
            "sessionToken": FormattingUtils.mask_token(self.session_token),
        }

    def _notify(self, event: str) -> None:
        for listener in list(self._listeners):
            listener(event)
