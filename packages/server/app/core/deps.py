"""
Service container and FastAPI dependencies.

``create_app`` stores one ``Services`` instance on ``app.state``; routes
reach it through ``get_services``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import structlog
from fastapi import Depends, Request, Response
from yoink_shared.schemas.common import AuthMethod, MembershipRole

from app.core.auth import USER_SESSION_COOKIE, CombinedAuthenticator
from app.core.clock import Clock, SystemClock
from app.core.config import Settings
from app.core.context import AuthContext
from app.core.errors import ApiError, Err, ErrorType, insufficient_permissions, raise_for_error, unwrap
from app.core.locks import LocalOrganizationLocks, OrganizationLocks
from app.services.admin_sessions import AdminSession, AdminSessionService
from app.services.challenge import ChallengeManager
from app.services.invitations import InvitationService
from app.services.memberships import MembershipService
from app.services.organizations import OrganizationService
from app.services.passkeys import PasskeyService
from app.services.sessions import SessionService
from app.services.signup import SignupService
from app.services.tokens import TokenService
from app.services.users import UserService
from app.services.webauthn import PyWebAuthnVerifier, WebAuthnVerifier
from app.stores import Stores

log = structlog.get_logger()

ADMIN_SESSION_COOKIE = "admin_session"


@dataclass
class Services:
    settings: Settings
    stores: Stores
    users: UserService
    organizations: OrganizationService
    memberships: MembershipService
    sessions: SessionService
    tokens: TokenService
    passkeys: PasskeyService
    invitations: InvitationService
    signup: SignupService
    authenticator: CombinedAuthenticator
    admin: Optional[AdminSessionService] = None


def build_services(
    settings: Settings,
    stores: Stores,
    *,
    clock: Optional[Clock] = None,
    verifier: Optional[WebAuthnVerifier] = None,
    locks: Optional[OrganizationLocks] = None,
) -> Services:
    clock = clock or SystemClock()

    users = UserService(stores.users, clock=clock)
    organizations = OrganizationService(stores.organizations, clock=clock)
    memberships = MembershipService(
        stores.memberships,
        stores.users,
        stores.organizations,
        locks=locks or LocalOrganizationLocks(),
        clock=clock,
    )
    sessions = SessionService(
        stores.sessions,
        users,
        memberships,
        clock=clock,
        session_ttl=timedelta(seconds=settings.session_ttl_seconds),
        refresh_threshold=timedelta(seconds=settings.session_refresh_threshold_seconds),
    )
    tokens = TokenService(
        stores.tokens,
        users,
        memberships,
        clock=clock,
        max_tokens_per_user=settings.max_tokens_per_user,
        bcrypt_rounds=settings.bcrypt_rounds,
    )
    passkeys = PasskeyService(
        stores.credentials,
        users,
        verifier
        or PyWebAuthnVerifier(
            rp_id=settings.webauthn_rp_id,
            rp_name=settings.webauthn_rp_name,
            origins=settings.webauthn_origin,
        ),
        ChallengeManager(settings.webauthn_challenge_secret, clock=clock),
        clock=clock,
    )
    invitations = InvitationService(
        stores.invitations, stores.organizations, memberships, clock=clock
    )

    admin = None
    if settings.admin_enabled:
        admin = AdminSessionService(
            settings.admin_password,
            settings.admin_session_secret,
            clock=clock,
            session_ttl=timedelta(seconds=settings.admin_session_ttl_seconds),
        )
    else:
        log.info("admin.disabled", reason="admin_password or admin_session_secret not set")

    return Services(
        settings=settings,
        stores=stores,
        users=users,
        organizations=organizations,
        memberships=memberships,
        sessions=sessions,
        tokens=tokens,
        passkeys=passkeys,
        invitations=invitations,
        signup=SignupService(invitations, users, organizations, memberships),
        authenticator=CombinedAuthenticator(sessions, tokens, memberships),
        admin=admin,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


# ---------------------------------------------------------------------------
# Cookies
# ---------------------------------------------------------------------------


def cookie_kwargs(settings: Settings, max_age: int) -> dict:
    return {
        "httponly": True,
        "secure": not settings.debug,  # allow non-HTTPS in dev
        "samesite": "strict",
        "path": "/",
        "max_age": max_age,
    }


def set_session_cookie(response: Response, settings: Settings, session_id: str) -> None:
    response.set_cookie(
        key=USER_SESSION_COOKIE,
        value=session_id,
        **cookie_kwargs(settings, settings.session_ttl_seconds),
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=USER_SESSION_COOKIE,
        path="/",
        secure=not settings.debug,
        httponly=True,
        samesite="strict",
    )


def set_admin_cookie(response: Response, settings: Settings, token: str) -> None:
    response.set_cookie(
        key=ADMIN_SESSION_COOKIE,
        value=token,
        **cookie_kwargs(settings, settings.admin_session_ttl_seconds),
    )


def clear_admin_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=ADMIN_SESSION_COOKIE,
        path="/",
        secure=not settings.debug,
        httponly=True,
        samesite="strict",
    )


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------


async def get_auth_context(
    request: Request, services: Services = Depends(get_services)
) -> AuthContext:
    """Main authentication dependency: session cookie first, then bearer token."""
    auth = unwrap(
        await services.authenticator.authenticate(
            request.cookies.get(USER_SESSION_COOKIE),
            request.headers.get("Authorization"),
        )
    )
    request.state.auth = auth
    return auth


async def require_session(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
    """Routes that manage the browser session itself."""
    if auth.method is not AuthMethod.SESSION or auth.session is None:
        raise ApiError(ErrorType.INVALID_SESSION, "This action requires a browser session", 401)
    return auth


async def require_admin_role(
    organization_id: uuid.UUID,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
) -> AuthContext:
    """Caller must be owner or admin of the organization in the path."""
    allowed = await services.memberships.has_role(
        auth.user_id, organization_id, MembershipRole.ADMIN
    )
    if isinstance(allowed, Err):
        raise_for_error(allowed)
    if not allowed.value:
        raise_for_error(insufficient_permissions(MembershipRole.ADMIN.value))
    return auth


async def require_member_of(
    organization_id: uuid.UUID,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
) -> AuthContext:
    """Caller must hold any membership in the organization in the path."""
    allowed = await services.memberships.has_role(
        auth.user_id, organization_id, MembershipRole.MEMBER
    )
    if isinstance(allowed, Err):
        raise_for_error(allowed)
    if not allowed.value:
        raise ApiError(ErrorType.NOT_A_MEMBER, "User is not a member of this organization", 403)
    return auth


async def require_admin_session(
    request: Request, services: Services = Depends(get_services)
) -> AdminSession:
    """Operator console guard (``admin_session`` cookie)."""
    if services.admin is None:
        raise ApiError(ErrorType.UNAUTHENTICATED, "Admin console is disabled", 401)
    token = request.cookies.get(ADMIN_SESSION_COOKIE)
    session = services.admin.verify_session(token) if token else None
    if session is None:
        raise ApiError(ErrorType.UNAUTHENTICATED, "Admin session required", 401)
    return session
