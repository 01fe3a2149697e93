"""
Authentication Manager Module - PTE Intensive Management
Author: PTE Intensive Team
Date: October 2026

This module connects the Flask session to the access policy. Sign-in itself is
handled by the external identity provider; once it succeeds the provider
integration calls ``start_session`` with the principal and everything here
reads the session from then on.

Features:
- Principal resolution from the session
- Page access middleware (before_request) applying the access policy
- Endpoint decorators for session and scheduler-secret authentication
"""

import hmac
import logging
from dataclasses import dataclass
from functools import wraps
from typing import Any, Mapping, Optional, Tuple

from flask import Flask, current_app, g, redirect, request, session

from .access_policy import AccessPolicy, Decision
from .errors import AuthorizationError

logger = logging.getLogger(__name__)

SESSION_KEYS = ('user_id', 'user_name', 'user_email', 'role')
EXEMPT_PREFIXES = ('/static/', '/api/')
EXEMPT_PATHS = ('/favicon.ico', '/api')


@dataclass(frozen=True)
class Principal:
    """Authenticated actor carried by the session."""
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.email or self.id


def resolve_principal(session_data: Mapping[str, Any]) -> Optional[Principal]:
    """Return the signed-in principal, or None when the session is anonymous."""
    user_id = session_data.get('user_id')
    if not user_id:
        return None
    return Principal(
        id=str(user_id),
        name=session_data.get('user_name'),
        email=session_data.get('user_email'),
        role=session_data.get('role') or None
    )


def start_session(principal: Principal) -> None:
    """Write a principal into the session after the identity provider signs it in."""
    session.clear()
    session['user_id'] = principal.id
    session['user_name'] = principal.name
    session['user_email'] = principal.email
    if principal.role:
        session['role'] = principal.role
    session.permanent = True
    logger.info(f"Session started for user {principal.id} ({principal.role or 'no role'})")


def end_session() -> Optional[str]:
    user_id = session.get('user_id')
    session.clear()
    if user_id:
        logger.info(f"Session ended for user {user_id}")
    return user_id


def current_principal() -> Optional[Principal]:
    if 'principal' not in g:
        g.principal = resolve_principal(session)
    return g.principal


class RequestAuthorizer:
    """
    Page access middleware. Runs before every request, skips static, API and
    favicon paths, and turns policy redirects into HTTP redirects.
    """

    def __init__(self, policy: Optional[AccessPolicy] = None,
                 exempt_prefixes: Tuple[str, ...] = EXEMPT_PREFIXES,
                 exempt_paths: Tuple[str, ...] = EXEMPT_PATHS):
        self.policy = policy or AccessPolicy()
        self.exempt_prefixes = exempt_prefixes
        self.exempt_paths = exempt_paths
        self.logger = logging.getLogger(__name__)

    def init_app(self, app: Flask) -> None:
        app.before_request(self.authorize_request)
        app.extensions['request_authorizer'] = self

    def is_exempt(self, path: str) -> bool:
        return path in self.exempt_paths or path.startswith(self.exempt_prefixes)

    def evaluate(self, path: str) -> Decision:
        principal = current_principal()
        role = principal.role if principal else None
        return self.policy.decide(role, principal is not None, path)

    def authorize_request(self):
        path = request.path
        if self.is_exempt(path):
            return None

        decision = self.evaluate(path)
        if decision.is_allowed:
            return None

        self.logger.info(f"Redirecting {path} to {decision.location}")
        return redirect(decision.location)


def session_required(f):
    """Decorator for API endpoints that need a signed-in principal."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if current_principal() is None:
            raise AuthorizationError()
        return f(*args, **kwargs)
    return decorated_function


def has_scheduler_token(authorization: Optional[str], secret: Optional[str]) -> bool:
    """
    Check an ``Authorization: Bearer <secret>`` header against the scheduler secret.

    Args:
        authorization (Optional[str]): Raw Authorization header value
        secret (Optional[str]): Configured shared secret; None disables the check

    Returns:
        bool: True only when a secret is configured and the header carries it
    """
    if not secret or not authorization:
        return False
    scheme, _, token = authorization.partition(' ')
    if scheme.lower() != 'bearer' or not token:
        return False
    return hmac.compare_digest(token.strip().encode('utf-8'), secret.encode('utf-8'))


def scheduler_or_session_required(f):
    """Decorator accepting either the scheduler's bearer secret or a session."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        secret = current_app.config.get('CRON_SECRET')
        if has_scheduler_token(request.headers.get('Authorization'), secret):
            g.triggered_by = 'scheduler'
        elif current_principal() is not None:
            g.triggered_by = f"user:{current_principal().id}"
        else:
            logger.warning(f"Rejected unauthenticated call to {request.path}")
            raise AuthorizationError()
        return f(*args, **kwargs)
    return decorated_function
