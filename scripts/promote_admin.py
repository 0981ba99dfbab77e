#!/usr/bin/env python3
"""
Promote an existing user to administrator.

Runs with the service role key, so row-level security does not apply.
The user must already have signed up and have a profile row.
"""

import argparse
import asyncio
import sys

from supabase._async.client import create_client as create_async_supabase_client

from malawi_properties_service.config import settings
from malawi_properties_service.crud import profile_crud
from malawi_properties_service.schemas.records import UserType


async def promote(user_id: str, dry_run: bool) -> bool:
    if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_ROLE_KEY:
        print("❌ MALAWI_PROPERTIES_SERVICE_SUPABASE_URL and _SUPABASE_SERVICE_ROLE_KEY must be set")
        return False

    supabase = await create_async_supabase_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)

    profile = await profile_crud.get_profile(supabase, user_id)
    if profile is None:
        print(f"❌ No profile found for user {user_id}")
        return False

    print(f"Found profile {profile.id} ({profile.email or 'no email'}) as {profile.user_type.value}")
    if profile.user_type == UserType.ADMIN:
        print("Already an admin, nothing to do")
        return True
    if dry_run:
        print("Dry run, not updating")
        return True

    updated = await profile_crud.upsert_profile(
        supabase, {"id": profile.id, "email": profile.email, "user_type": UserType.ADMIN.value}
    )
    print(f"✅ {updated.id} is now {updated.user_type.value}")
    return True


def parse_args():
    parser = argparse.ArgumentParser(description="Promote a marketplace user to administrator")
    parser.add_argument("user_id", help="Auth user id (UUID) of the profile to promote")
    parser.add_argument("--dry-run", action="store_true", help="Show the profile without changing it")
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    ok = asyncio.run(promote(args.user_id, args.dry_run))
    sys.exit(0 if ok else 1)
