from dataclasses import dataclass
from typing import Dict, Optional


AUTHORIZATION_HEADER = "Authorization"
SESSION_TOKEN_HEADER = "X-Session-Token"


@dataclass(frozen=True)
class CartSession:
    """The identity a cart request is addressed by: a user token XOR an anonymous session token"""
    user_token: Optional[str] = None
    session_token: Optional[str] = None

    def __post_init__(self):
        if bool(self.user_token) == bool(self.session_token):
            raise ValueError("CartSession needs exactly one of user_token or session_token")

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_token)

    def headers(self) -> Dict[str, str]:
        """The single identifying header for a cart request"""
        if self.is_authenticated:
            return {AUTHORIZATION_HEADER: f"Bearer {self.user_token}"}
        return {SESSION_TOKEN_HEADER: self.session_token}
