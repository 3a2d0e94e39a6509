"""
Seed a local database with a hub, an ADMIN and a VALIDATOR.

Usage:
    python -m app.scripts.seed_campus --hub-code CAMPUS01 --admin-email admin@campus.dev

Prints a development bearer token for each seeded user.
"""

import argparse
import asyncio
from typing import Optional

from sqlmodel import select

from app.core.auth import create_jwt
from app.core.database import get_session_context, init_db
from app.models.membership import Membership
from app.models.organization import Organization
from app.models.user import User
from app.services import organizations as org_service
from app.stores import memberships as membership_store
from campusface_shared.schemas.common import MemberStatus, Role


async def _get_or_create_user(session, email: str, full_name: str) -> User:
    result = await session.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user:
        print(f"User {email} already exists.")
        return user
    user = User(full_name=full_name, email=email)
    session.add(user)
    await session.flush()
    print(f"Created user: {email}")
    return user


async def seed(
    hub_code: str,
    hub_name: str,
    admin_email: str,
    validator_email: Optional[str],
) -> None:
    await init_db()

    async with get_session_context() as session:
        admin = await _get_or_create_user(session, admin_email, "Campus Admin")

        result = await session.execute(
            select(Organization).where(Organization.hub_code == hub_code)
        )
        org = result.scalar_one_or_none()
        if not org:
            org = await org_service.create_org(hub_name, hub_code, admin.id, session)
            print(f"Created hub {hub_code} with {admin_email} as ADMIN.")

        tokens = {admin_email: create_jwt(admin.id)}

        if validator_email:
            validator = await _get_or_create_user(session, validator_email, "Gate Validator")
            if not await membership_store.find_membership(validator.id, org.id, session):
                await membership_store.create_membership(
                    Membership(
                        org_id=org.id,
                        user_id=validator.id,
                        role=Role.VALIDATOR.value,
                        status=MemberStatus.ACTIVE.value,
                    ),
                    session,
                )
                await org_service.add_to_directory(org.id, Role.VALIDATOR, validator.id, session)
                print(f"Added {validator_email} as VALIDATOR.")
            tokens[validator_email] = create_jwt(validator.id)

    print(f"Hub id: {org.id}")
    for email, token in tokens.items():
        print(f"Bearer token for {email}: {token}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed a local CampusFace hub.")
    parser.add_argument("--hub-code", default="CAMPUS01", help="Shareable hub code")
    parser.add_argument("--hub-name", default="Main Campus", help="Hub display name")
    parser.add_argument("--admin-email", required=True, help="Email of the hub ADMIN")
    parser.add_argument("--validator-email", help="Email of a gate VALIDATOR")

    args = parser.parse_args()

    asyncio.run(seed(args.hub_code, args.hub_name, args.admin_email, args.validator_email))
