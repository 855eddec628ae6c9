"""
Credential Guard
Keeps credential values out of logs, auth events and exported results.
"""

from __future__ import annotations

import os
import re
from typing import TYPE_CHECKING, Iterable, Mapping, Optional, Set

if TYPE_CHECKING:
    from .auth_config import AuthConfig

REDACTED = "[REDACTED]"

# Shorter values would redact ordinary words out of error messages
_MIN_SECRET_LENGTH = 4


class CredentialGuard:
    """Registry of secret values with a ``redact()`` filter."""

    def __init__(
        self,
        config: Optional["AuthConfig"] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self._secrets: Set[str] = set()
        if config is not None:
            self.load_from_config(config, environ)

    def load_from_config(
        self, config: "AuthConfig", environ: Optional[Mapping[str, str]] = None
    ) -> None:
        """Register every credential value the config's env vars resolve to."""
        env = os.environ if environ is None else environ
        for role in config.roles:
            for var in (role.credentials.identifier_env_var, role.credentials.password_env_var):
                if var:
                    self.add_secrets([env.get(var, "")])

    def add_secrets(self, secrets: Iterable[str]) -> None:
        for secret in secrets:
            if secret and len(secret) >= _MIN_SECRET_LENGTH:
                self._secrets.add(secret)

    @property
    def secret_count(self) -> int:
        return len(self._secrets)

    def redact(self, text: Optional[str]) -> Optional[str]:
        """Replace each known secret in *text* with ``[REDACTED]``."""
        if not text or not self._secrets:
            return text
        # Longest first so a secret containing another is replaced whole
        pattern = "|".join(
            re.escape(s) for s in sorted(self._secrets, key=len, reverse=True)
        )
        return re.sub(pattern, REDACTED, text)

    def contains_secret(self, text: Optional[str]) -> bool:
        if not text:
            return False
        return any(secret in text for secret in self._secrets)
