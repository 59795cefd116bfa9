"""Access Scope Filter: which sites a caller may see.

Single source of truth for the aggregator, gateway overview, assignment
service and alert engine.
"""

from __future__ import annotations

import logging
from typing import FrozenSet, Iterable, Optional, Protocol

from ..errors import Forbidden
from .authorization import Caller

logger = logging.getLogger(__name__)


class GrantSource(Protocol):
    def granted_site_ids(self, user_id: str) -> Iterable[str]:
        ...


class SiteScope:
    """Either every site (administrators) or an explicit set of site ids.

    The "all sites" form never materializes a site list; use ``allows`` as
    a predicate and ``site_ids`` (None means unrestricted) for queries.
    """

    __slots__ = ("_site_ids",)

    ALL: "SiteScope"

    def __init__(self, site_ids: Optional[Iterable[str]]):
        self._site_ids: Optional[FrozenSet[str]] = None if site_ids is None else frozenset(site_ids)

    @classmethod
    def of(cls, site_ids: Iterable[str]) -> "SiteScope":
        return cls(site_ids)

    @property
    def is_all(self) -> bool:
        return self._site_ids is None

    @property
    def site_ids(self) -> Optional[FrozenSet[str]]:
        return self._site_ids

    @property
    def is_empty(self) -> bool:
        return self._site_ids is not None and not self._site_ids

    def allows(self, site_id: Optional[str]) -> bool:
        if self._site_ids is None:
            return True
        return site_id is not None and site_id in self._site_ids

    def __eq__(self, other: object) -> bool:
        return isinstance(other, SiteScope) and self._site_ids == other._site_ids

    def __hash__(self) -> int:
        return hash(self._site_ids)

    def __repr__(self) -> str:
        if self._site_ids is None:
            return "SiteScope.ALL"
        return f"SiteScope({sorted(self._site_ids)!r})"


SiteScope.ALL = SiteScope(None)


class AccessScopeFilter:
    def __init__(self, grants: GrantSource):
        self._grants = grants

    def visible_sites(self, caller: Caller) -> SiteScope:
        if caller.is_administrator:
            return SiteScope.ALL
        site_ids = frozenset(self._grants.granted_site_ids(caller.user_id))
        if not site_ids:
            logger.info("[SCOPE] User %s has no site grants", caller.user_id)
        return SiteScope.of(site_ids)

    def require_site(self, caller: Caller, site_id: Optional[str]) -> SiteScope:
        scope = self.visible_sites(caller)
        if not scope.allows(site_id):
            logger.warning("[SCOPE] Denied user=%s site=%s", caller.user_id, site_id)
            raise Forbidden(f"Caller '{caller.user_id}' has no access to site '{site_id}'")
        return scope

    def require_administrator(self, caller: Caller, action: str) -> None:
        if not caller.is_administrator:
            logger.warning("[SCOPE] Denied non-admin user=%s action=%s", caller.user_id, action)
            raise Forbidden(f"Administrator access required to {action}")
