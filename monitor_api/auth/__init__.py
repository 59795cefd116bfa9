"""Módulo de autorización: rol del caller y sitios visibles."""

from .authorization import Caller, Role
from .scope import AccessScopeFilter, SiteScope

__all__ = [
    "AccessScopeFilter",
    "Caller",
    "Role",
    "SiteScope",
]
