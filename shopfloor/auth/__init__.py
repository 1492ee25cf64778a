# shopfloor/auth/__init__.py
from dataclasses import dataclass


@dataclass(frozen=True)
class Caller:
    """Who is calling: supplied by the identity layer on every request."""
    user_id: int
    role: str
    name: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


__all__ = ["Caller"]
