"""
ElderVoice - Table operations for account holders and patients.

`users` holds the signed-in account (the caregiver, or the patient themself
on the myself path). `elderly_users` holds the person who receives calls,
linked to the account by caregiver_id.
"""

import logging

from .client import get_service_client

logger = logging.getLogger(__name__)


# =============================================================================
# Users
# =============================================================================


async def update_user(user_id: str, updates: dict) -> dict | None:
    """Update the account holder's row. Returns the updated row, if any."""
    client = get_service_client()
    response = client.table("users").update(updates).eq("id", user_id).execute()
    if not response.data:
        logger.warning(f"update_user matched no rows for {user_id}")
        return None
    return response.data[0]


# =============================================================================
# Elderly Users
# =============================================================================


async def get_elderly_users(caregiver_id: str) -> list[dict]:
    """All patients linked to an account, oldest first."""
    client = get_service_client()
    response = (
        client.table("elderly_users")
        .select("*")
        .eq("caregiver_id", caregiver_id)
        .order("id")
        .execute()
    )
    return response.data


async def get_elderly_user(elderly_user_id: int) -> dict | None:
    client = get_service_client()
    response = (
        client.table("elderly_users")
        .select("*")
        .eq("id", elderly_user_id)
        .maybe_single()
        .execute()
    )
    # maybe_single() returns None instead of an empty response on some versions
    return response.data if response else None


async def create_elderly_user(record: dict) -> dict:
    client = get_service_client()
    response = client.table("elderly_users").insert(record).execute()
    return response.data[0]


async def update_elderly_user(elderly_user_id: int, updates: dict) -> dict:
    client = get_service_client()
    response = (
        client.table("elderly_users")
        .update(updates)
        .eq("id", elderly_user_id)
        .execute()
    )
    return response.data[0]
