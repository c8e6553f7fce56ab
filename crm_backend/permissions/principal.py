"""
Authenticated identity attached to a request or socket.
"""

from dataclasses import dataclass

ADMIN_ROLE = "admin"
DEFAULT_DISPLAY_NAME = "User"


@dataclass(frozen=True)
class Principal:
    """Who is acting: user id, role and display name."""

    user_id: str
    role: str = "user"
    name: str = DEFAULT_DISPLAY_NAME

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    @classmethod
    def from_claims(cls, claims: dict) -> "Principal":
        """Build a principal from decoded token claims (``id``, ``role``, ``name``)."""
        user_id = claims.get("id")
        if user_id is None or str(user_id) == "":
            raise ValueError("Token has no 'id' claim")
        return cls(
            user_id=str(user_id),
            role=str(claims.get("role") or "user"),
            name=str(claims.get("name") or DEFAULT_DISPLAY_NAME),
        )
