"""
Access Policy Module - PTE Intensive Management
Author: PTE Intensive Team
Date: October 2026

Pure route-access decisions for page requests. Given the caller's role, whether
the caller holds a session at all, and the requested path, the policy answers
either "allow" or "redirect to <path>". The policy is total: every input yields
exactly one decision and nothing here raises.

Rules (first match wins):
- no session: everything except the sign-in page redirects to sign-in
- the home page is open to every signed-in user
- a session whose role has not been populated yet is let through
- admins see everything
- section-bound roles (trainer, administrative assistant) are kept inside their
  section, except for pages under /auth
- any other role is let through unless unlisted roles are restricted
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional


class Role(str, Enum):
    ADMIN = 'admin'
    TRAINER = 'trainer'
    ADMINISTRATIVE_ASSISTANT = 'administrative_assistant'
    ACCOUNTANT = 'accountance'
    SALER = 'saler'


@dataclass(frozen=True)
class Decision:
    """Outcome of a policy evaluation."""
    action: str
    location: Optional[str] = None

    ALLOW = 'allow'
    REDIRECT = 'redirect'

    @classmethod
    def allow(cls) -> 'Decision':
        return cls(cls.ALLOW)

    @classmethod
    def redirect_to(cls, location: str) -> 'Decision':
        return cls(cls.REDIRECT, location)

    @property
    def is_allowed(self) -> bool:
        return self.action == self.ALLOW


DEFAULT_ROLE_SECTIONS = {
    Role.TRAINER.value: '/attendance',
    Role.ADMINISTRATIVE_ASSISTANT.value: '/studentinformation',
}


@dataclass
class AccessPolicy:
    """
    Role based page access policy.

    Attributes:
        signin_path: Page unauthenticated callers are sent to
        home_path: Page open to every signed-in caller
        auth_prefix: Prefix of auth pages section-bound roles may always visit
        full_access_roles: Roles allowed on every path
        role_sections: Role -> section prefix the role is confined to
        allow_unset_role: Let sessions without a role through (transitional)
        restrict_unlisted_roles: Send roles without a rule back to home_path
    """
    signin_path: str = '/auth/signin'
    home_path: str = '/'
    auth_prefix: str = '/auth'
    full_access_roles: FrozenSet[str] = frozenset({Role.ADMIN.value})
    role_sections: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ROLE_SECTIONS))
    allow_unset_role: bool = True
    restrict_unlisted_roles: bool = False

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> 'AccessPolicy':
        sections = dict(DEFAULT_ROLE_SECTIONS)
        sections.update(config.get('ACCESS_ROLE_SECTIONS') or {})
        return cls(
            signin_path=config.get('ACCESS_SIGNIN_PATH', '/auth/signin'),
            role_sections=sections,
            allow_unset_role=config.get('ACCESS_ALLOW_UNSET_ROLE', True),
            restrict_unlisted_roles=config.get('ACCESS_RESTRICT_UNLISTED_ROLES', False),
        )

    def decide(self, role: Optional[str], has_token: bool, path: str) -> Decision:
        """
        Decide whether a page request may proceed.

        Args:
            role (Optional[str]): Role carried by the session, if any
            has_token (bool): Whether the caller holds a session at all
            path (str): Requested URL path

        Returns:
            Decision: Allow, or a redirect with its target path
        """
        if not has_token:
            if path == self.signin_path:
                return Decision.allow()
            return Decision.redirect_to(self.signin_path)

        if path == self.home_path:
            return Decision.allow()

        if not role:
            # Role is written to the session after sign-in completes
            if self.allow_unset_role:
                return Decision.allow()
            return Decision.redirect_to(self.home_path)

        role = role.value if isinstance(role, Role) else str(role)

        if role in self.full_access_roles:
            return Decision.allow()

        section = self.role_sections.get(role)
        if section is not None:
            if path.startswith(section):
                return Decision.allow()
            if not path.startswith(self.auth_prefix):
                return Decision.redirect_to(section)
            return Decision.allow()

        if self.restrict_unlisted_roles:
            return Decision.redirect_to(self.home_path)
        return Decision.allow()


def decide(role: Optional[str], has_token: bool, path: str) -> Decision:
    """Evaluate the default policy."""
    return AccessPolicy().decide(role, has_token, path)
