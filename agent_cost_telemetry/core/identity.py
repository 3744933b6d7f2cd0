"""
Caller identity port.

The recording gate only needs to know whether a caller identity has been
established by the surrounding context.
"""

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class Identity:
    """An authenticated caller."""
    subject: str
    issuer: str = "local"

    @property
    def token_identifier(self) -> str:
        return f"{self.issuer}|{self.subject}"


class IdentityProvider(Protocol):
    def get_user_identity(self) -> Optional[Identity]:
        ...


class StaticIdentityProvider:
    """Provider returning a fixed identity, or none when ``subject`` is empty."""

    def __init__(self, subject: Optional[str] = None, issuer: str = "local"):
        self._identity = Identity(subject=subject, issuer=issuer) if subject else None

    def get_user_identity(self) -> Optional[Identity]:
        return self._identity
