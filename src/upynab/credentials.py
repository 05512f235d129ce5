"""API token lookup for the two providers."""

import os
from abc import ABC, abstractmethod
from typing import Optional

from upynab.domain.errors import CredentialError, missing_token

SOURCE_SERVICE = "up-banking"
TARGET_SERVICE = "ynab"

ENV_VARS = {
    SOURCE_SERVICE: "UP_API_TOKEN",
    TARGET_SERVICE: "YNAB_API_TOKEN",
}


class CredentialStore(ABC):
    """Named API tokens, one per service."""

    @abstractmethod
    def lookup(self, service: str) -> Optional[str]:
        """Return the token, or None if absent."""
        pass

    def has_token(self, service: str) -> bool:
        return bool(self.lookup(service))

    def get_token(self, service: str) -> str:
        """Return the token.

        Raises:
            CredentialError: If no token is stored for the service
        """
        token = self.lookup(service)
        if not token:
            raise CredentialError(missing_token(service))
        return token

    def token_provider(self, service: str):
        """Zero-argument callable resolving the token on every request."""
        return lambda: self.get_token(service)


class EnvCredentialStore(CredentialStore):
    """Reads tokens from UP_API_TOKEN and YNAB_API_TOKEN."""

    def __init__(self, env_vars: Optional[dict[str, str]] = None):
        self.env_vars = env_vars or ENV_VARS

    def lookup(self, service: str) -> Optional[str]:
        var = self.env_vars.get(service)
        if var is None:
            return None
        value = os.environ.get(var, "").strip()
        return value or None


class InMemoryCredentialStore(CredentialStore):
    def __init__(self, tokens: Optional[dict[str, str]] = None):
        self.tokens = dict(tokens or {})

    def lookup(self, service: str) -> Optional[str]:
        return self.tokens.get(service)

    def set_token(self, service: str, token: str) -> None:
        self.tokens[service] = token
