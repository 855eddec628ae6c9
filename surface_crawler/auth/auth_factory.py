"""
Authentication Factory
======================
Maps the ``authMethod.type`` of a role to the class that implements it.

Adding a new method:
    1. Create a class inheriting from ``AuthMethod`` with a ``method_type``
    2. Call ``AuthMethodFactory.register(method_class)``

The ``Authenticator`` is the only caller; the crawl engine never imports
method code directly.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Type

from ..exceptions import AuthConfigError
from .base_auth import AuthMethod

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Method Registry
# ---------------------------------------------------------------------------

# Global registry: maps method type → method class
_METHOD_REGISTRY: Dict[str, Type[AuthMethod]] = {}


class AuthMethodFactory:
    """Factory for auth method instances, keyed by config type."""

    @staticmethod
    def register(method_class: Type[AuthMethod]) -> None:
        """Register a method class in the global registry.

        Args:
            method_class: A concrete subclass of ``AuthMethod``.
        """
        name = method_class.method_type
        if not name:
            raise ValueError(f"{method_class.__name__} has no method_type")
        _METHOD_REGISTRY[name] = method_class
        logger.debug(f"[AUTH-FACTORY] Registered method: {name}")

    @staticmethod
    def create(method_type: str) -> AuthMethod:
        """Instantiate the method registered for *method_type*.

        Raises:
            AuthConfigError: No method is registered under that type.
        """
        method_class = _METHOD_REGISTRY.get(method_type)
        if method_class is None:
            raise AuthConfigError(
                f"Unsupported auth method: '{method_type}'",
                [f"registered methods: {', '.join(AuthMethodFactory.list_methods()) or 'none'}"],
            )
        return method_class()

    @staticmethod
    def list_methods() -> List[str]:
        """Return names of all registered methods."""
        return list(_METHOD_REGISTRY.keys())

    @staticmethod
    def is_supported(method_type: str) -> bool:
        return method_type in _METHOD_REGISTRY


# ---------------------------------------------------------------------------
# Auto-register built-in methods on import
# ---------------------------------------------------------------------------

def _auto_register() -> None:
    from .form_login import FormLoginMethod
    from .storage_state import StorageStateMethod

    AuthMethodFactory.register(FormLoginMethod)
    AuthMethodFactory.register(StorageStateMethod)


_auto_register()
