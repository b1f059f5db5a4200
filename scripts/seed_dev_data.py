#!/usr/bin/env python3
"""Seed a local database with a user, their personal workspace and an API token.

Passkeys cannot be created from a script, so the printed bearer token is the
way to call the API until a passkey is registered through the browser.

Usage:
    python scripts/seed_dev_data.py --email dev@example.com

Uses YOINK_DATABASE_URL (defaults to ./yoink.db).
"""

import argparse
import asyncio
import os
import sys

# Make the server and shared packages importable without installing them
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, os.path.join(ROOT, "packages", "server"))
sys.path.insert(0, os.path.join(ROOT, "packages", "shared"))

from app.core.config import get_settings
from app.core.database import create_engine, create_session_factory, init_db
from app.core.deps import build_services
from app.core.errors import Err
from app.services.organizations import personal_organization_name
from app.stores import sql_stores
from yoink_shared.schemas.common import MembershipRole


async def seed(email: str, token_name: str) -> int:
    settings = get_settings()
    engine = create_engine(settings.database_url)
    await init_db(engine)
    services = build_services(settings, sql_stores(create_session_factory(engine)))

    try:
        existing = await services.users.find_by_email(email)
        if isinstance(existing, Err):
            print(f"Lookup failed: {existing.error.message}")
            return 1

        if existing.value is not None:
            user = existing.value
            print(f"User {user.email} already exists.")
            memberships = await services.memberships.list_memberships(user_id=user.id)
            if isinstance(memberships, Err):
                print(f"Lookup failed: {memberships.error.message}")
                return 1
            organization_id = next(
                m.organization_id for m in memberships.value if m.is_personal_org
            )
        else:
            created = await services.users.create_user(email)
            if isinstance(created, Err):
                print(f"Could not create user: {created.error.message}")
                return 1
            user = created.value
            organization = await services.organizations.create_organization(
                personal_organization_name(user.email)
            )
            if isinstance(organization, Err):
                print(f"Could not create workspace: {organization.error.message}")
                return 1
            organization_id = organization.value.id
            owner = await services.memberships.add_member(
                user.id, organization_id, MembershipRole.OWNER, is_personal_org=True
            )
            if isinstance(owner, Err):
                print(f"Could not create membership: {owner.error.message}")
                return 1
            print(f"Created user {user.email} with workspace {organization.value.name!r}.")

        issued = await services.tokens.create_token(user.id, organization_id, token_name)
        if isinstance(issued, Err):
            print(f"Could not create token: {issued.error.message}")
            return 1

        print(f"Authorization: Bearer {issued.value.raw}")
        return 0
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed a local Yoink database.")
    parser.add_argument("--email", default="dev@example.com", help="Email address for the user")
    parser.add_argument("--token-name", default="local dev", help="Label for the API token")

    args = parser.parse_args()

    sys.exit(asyncio.run(seed(args.email, args.token_name)))
