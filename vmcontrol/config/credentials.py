from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Union


@dataclass(frozen=True)
class PasswordCredential:
    username: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class KeyCredential:
    username: str
    key_material: str = field(repr=False)
    passphrase: str | None = field(default=None, repr=False)

    @classmethod
    def from_file(
        cls, username: str, path: str | Path, passphrase: str | None = None
    ) -> "KeyCredential":
        """Load private key material from a file chosen by the user."""
        key_path = Path(path).expanduser()
        return cls(username, key_path.read_text(encoding="utf-8"), passphrase)


Credential = Union[PasswordCredential, KeyCredential]


@dataclass(frozen=True)
class RemoteTarget:
    """A reachable host plus how to authenticate against it."""

    host: str
    credential: Credential
    port: int = 22

    def __post_init__(self):
        if not self.host or not str(self.host).strip():
            raise ValueError("Target host is required")
        if self.port < 1 or self.port > 65535:
            raise ValueError(f"Invalid port {self.port}")

    @property
    def username(self) -> str:
        return self.credential.username

    def __str__(self) -> str:
        return f"{self.username}@{self.host}:{self.port}"
