"""Credentials, environment settings and YAML server profiles."""

from .credentials import Credential, KeyCredential, PasswordCredential, RemoteTarget

__all__ = ["Credential", "KeyCredential", "PasswordCredential", "RemoteTarget"]
