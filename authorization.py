"""Coarse (URL) and fine (operation) authorization.

Coarse rules are an ordered list of ``AccessRule`` entries matched on path
and method; the first match decides. Fine rules are predicates attached to
business operations with ``pre_authorize`` and evaluated against the caller's
``SecurityContext`` and the operation's own arguments.
"""
import functools
import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, FrozenSet, Optional, Sequence

from errors import AuthenticationRequired, Forbidden
from permissions import role_marker


@dataclass(frozen=True)
class SecurityContext:
    """The authenticated caller of the current request"""
    account_id: int
    username: str
    roles: FrozenSet[str] = frozenset()
    authorities: FrozenSet[str] = frozenset()

    def has_authority(self, authority: str) -> bool:
        return authority in self.authorities

    def has_any_authority(self, *authorities: str) -> bool:
        return any(a in self.authorities for a in authorities)

    def has_role(self, role: str) -> bool:
        return role_marker(role) in self.authorities

    def is_account(self, account_id: Optional[int]) -> bool:
        return account_id is not None and self.account_id == account_id


class Access(Enum):
    PERMIT_ALL = "permit_all"
    AUTHENTICATED = "authenticated"
    ANY_AUTHORITY = "any_authority"


@dataclass(frozen=True)
class AccessRule:
    """One coarse rule: ``/x/**`` patterns cover ``/x`` and everything below it"""
    patterns: Sequence[str]
    access: Access
    authorities: FrozenSet[str] = frozenset()
    methods: FrozenSet[str] = frozenset()

    def matches(self, method: str, path: str) -> bool:
        if self.methods and method.upper() not in self.methods:
            return False
        return any(_path_matches(pattern, path) for pattern in self.patterns)


def _path_matches(pattern: str, path: str) -> bool:
    if pattern.endswith("/**"):
        prefix = pattern[:-3]
        return path == prefix or path.startswith(prefix + "/")
    return path == pattern


def permit_all(*patterns: str) -> AccessRule:
    return AccessRule(patterns, Access.PERMIT_ALL)


def authenticated(*patterns: str) -> AccessRule:
    return AccessRule(patterns, Access.AUTHENTICATED)


def has_any_authority(patterns: Sequence[str], *authorities: str, methods: Sequence[str] = ()) -> AccessRule:
    return AccessRule(tuple(patterns), Access.ANY_AUTHORITY, frozenset(authorities),
                      frozenset(m.upper() for m in methods))


def has_any_role(patterns: Sequence[str], *roles: str) -> AccessRule:
    return has_any_authority(patterns, *(role_marker(role) for role in roles))


DEFAULT_RULE = authenticated("/**")


@dataclass(frozen=True)
class AuthorizationGate:
    rules: Sequence[AccessRule] = field(default_factory=tuple)

    def rule_for(self, method: str, path: str) -> AccessRule:
        for rule in self.rules:
            if rule.matches(method, path):
                return rule
        return DEFAULT_RULE

    def is_public(self, method: str, path: str) -> bool:
        return self.rule_for(method, path).access is Access.PERMIT_ALL

    def check_request(self, method: str, path: str, context: Optional[SecurityContext]):
        """Raise unless the caller may reach ``method path`` at all"""
        rule = self.rule_for(method, path)
        if rule.access is Access.PERMIT_ALL:
            return
        if context is None:
            raise AuthenticationRequired("Authentication required")
        if rule.access is Access.ANY_AUTHORITY and not context.has_any_authority(*rule.authorities):
            raise Forbidden()


def hospital_rules() -> tuple:
    """Route rules for the hospital API, most specific first"""
    return (
        permit_all("/public/**", "/auth/**", "/oauth2/**", "/login/oauth2/**",
                   "/", "/docs", "/docs/**", "/redoc", "/openapi.json"),
        has_any_authority(["/admin/**"], "appointment:delete", "user:manage", methods=["DELETE"]),
        has_any_role(["/admin/**"], "ADMIN"),
        has_any_role(["/doctors/**"], "DOCTOR", "ADMIN"),
    )


def pre_authorize(predicate: Callable[..., bool]):
    """Evaluate ``predicate`` before the decorated operation runs.

    The operation must take the caller's ``SecurityContext`` as its ``caller``
    argument. The predicate is called with the operation's bound arguments as
    keywords and must accept any it does not use via ``**_``.
    """
    def decorator(func):
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            bound = signature.bind(*args, **kwargs)
            bound.apply_defaults()
            if bound.arguments.get("caller") is None:
                raise AuthenticationRequired("Authentication required")
            if not predicate(**bound.arguments):
                raise Forbidden()
            return func(*args, **kwargs)

        return wrapper
    return decorator
