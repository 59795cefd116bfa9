"""Mapping of provider display names to internal sites.

The provider only knows free-text names. Each name embeds the site code
as a substring, e.g. ``"GFP-Gateway"``, ``"GSP Gateway"`` or
``"GFP Fridge 2"``. All call sites resolve through this module.

Match policy:
- names are normalized (trim, whitespace runs collapsed) before matching
- matching is case-sensitive
- when several codes are contained in the name, the longest code wins;
  equal lengths are broken by code in lexical order
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from ..provider.base import ProviderGatewayRecord
from ..schemas import Site

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")

G = TypeVar("G", bound=ProviderGatewayRecord)


def normalize_name(name: Optional[str]) -> str:
    if not name:
        return ""
    return _WHITESPACE.sub(" ", name.strip())


class SiteCodeIndex:
    """code -> Site lookup table, built once per aggregation."""

    def __init__(self, sites: Iterable[Site]):
        by_code: Dict[str, Site] = {}
        for site in sites:
            code = normalize_name(site.code)
            if not code:
                continue
            if code in by_code and by_code[code].id != site.id:
                logger.warning(
                    "[IDENTITY] Duplicate site code %r (sites %s, %s); keeping the first",
                    code, by_code[code].id, site.id,
                )
                continue
            by_code[code] = site
        self._by_code = by_code
        # Longest first, then lexical: the first hit is the policy winner.
        self._ordered: List[Tuple[str, Site]] = sorted(
            by_code.items(), key=lambda item: (-len(item[0]), item[0])
        )

    def __len__(self) -> int:
        return len(self._by_code)

    def by_code(self, code: str) -> Optional[Site]:
        return self._by_code.get(normalize_name(code))

    def resolve(self, provider_name: Optional[str]) -> Optional[Site]:
        name = normalize_name(provider_name)
        if not name:
            return None
        for code, site in self._ordered:
            if code in name:
                return site
        logger.debug("[IDENTITY] No site code found in %r", name)
        return None


def resolve_site(provider_name: Optional[str], known_sites: Iterable[Site]) -> Optional[Site]:
    index = known_sites if isinstance(known_sites, SiteCodeIndex) else SiteCodeIndex(known_sites)
    return index.resolve(provider_name)


def gateway_name_candidates(code: str) -> Tuple[str, str]:
    code = normalize_name(code)
    return (f"{code}-Gateway", f"{code} Gateway")


def resolve_gateway(site: Optional[Site], gateways: Iterable[G]) -> Optional[G]:
    """Gateway named after the site's code, bound only when exactly one matches."""
    if site is None or not normalize_name(site.code):
        return None

    candidates = set(gateway_name_candidates(site.code))
    matches: Sequence[G] = [g for g in gateways if normalize_name(g.name) in candidates]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        logger.warning(
            "[IDENTITY] %d gateways match site %s (%s); leaving sensor unbound",
            len(matches), site.code, ", ".join(sorted(g.id for g in matches)),
        )
    return None
