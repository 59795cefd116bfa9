"""Tests de alcance: rol normalizado y sitios visibles por caller."""

import pytest

from monitor_api.auth.authorization import SYSTEM_USER_ID, Caller, Role
from monitor_api.auth.scope import AccessScopeFilter, SiteScope
from monitor_api.errors import Forbidden


class _Grants:
    def __init__(self, grants):
        self._grants = grants

    def granted_site_ids(self, user_id):
        return self._grants.get(user_id, [])


@pytest.fixture
def scope_filter():
    return AccessScopeFilter(_Grants({"u1": ["site-gfp"], "u2": ["site-gfp", "site-gsp"]}))


class TestRole:
    @pytest.mark.parametrize("raw", ["admin", "ADMIN", " Admin ", "aDmIn\n"])
    def test_admin_spellings(self, raw):
        assert Role.parse(raw) == Role.ADMIN

    @pytest.mark.parametrize("raw", [None, "", "user", "administrator", "root"])
    def test_everything_else_is_user(self, raw):
        assert Role.parse(raw) == Role.USER

    def test_caller_from_raw(self):
        assert Caller.from_raw("x", "ADMIN").is_administrator
        assert not Caller.from_raw("x", "user").is_administrator

    def test_system_caller(self):
        caller = Caller.system()
        assert caller.user_id == SYSTEM_USER_ID
        assert caller.is_administrator


class TestSiteScope:
    def test_all(self):
        assert SiteScope.ALL.is_all
        assert SiteScope.ALL.site_ids is None
        assert not SiteScope.ALL.is_empty
        assert SiteScope.ALL.allows("anything")
        assert SiteScope.ALL.allows(None)

    def test_explicit_set(self):
        scope = SiteScope.of(["a", "b"])
        assert scope.allows("a")
        assert not scope.allows("c")
        assert not scope.allows(None)
        assert scope.site_ids == frozenset({"a", "b"})

    def test_empty(self):
        scope = SiteScope.of([])
        assert scope.is_empty
        assert not scope.allows("a")

    def test_equality(self):
        assert SiteScope.of(["a", "b"]) == SiteScope.of(["b", "a"])
        assert SiteScope.of([]) != SiteScope.ALL
        assert repr(SiteScope.ALL) == "SiteScope.ALL"


class TestAccessScopeFilter:
    def test_admin_sees_all_sites(self, scope_filter):
        assert scope_filter.visible_sites(Caller("root", Role.ADMIN)) is SiteScope.ALL

    def test_user_sees_granted_sites(self, scope_filter):
        assert scope_filter.visible_sites(Caller("u2")).site_ids == frozenset({"site-gfp", "site-gsp"})

    def test_user_without_grants_sees_nothing(self, scope_filter):
        assert scope_filter.visible_sites(Caller("nobody")).is_empty

    def test_require_site_denies_outside_scope(self, scope_filter):
        with pytest.raises(Forbidden):
            scope_filter.require_site(Caller("u1"), "site-gsp")

    def test_require_site_allows_granted(self, scope_filter):
        scope = scope_filter.require_site(Caller("u1"), "site-gfp")
        assert scope.allows("site-gfp")

    def test_require_administrator(self, scope_filter):
        scope_filter.require_administrator(Caller("root", Role.ADMIN), "create alerts")
        with pytest.raises(Forbidden) as exc:
            scope_filter.require_administrator(Caller("u1"), "create alerts")
        assert exc.value.status_code == 403
        assert exc.value.code == "forbidden"
