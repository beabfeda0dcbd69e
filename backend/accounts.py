from __future__ import annotations
import base64
import binascii
from typing import Optional

from backend.database import DataStore, load, load_all
from backend.schemas import Profile, Subscriber


async def get_profile(store: DataStore, user_id: str) -> Optional[Profile]:
    doc = await store.find_one("profile", {"user_id": user_id})
    return load(Profile, doc) if doc else None


async def save_profile(store: DataStore, profile: Profile) -> Profile:
    await store.upsert("profile", {"user_id": profile.user_id}, profile.model_dump())
    return profile


# Newsletter

def _clean(email: str) -> str:
    return email.strip().lower()


async def is_subscribed(store: DataStore, email: str) -> bool:
    return await store.find_one("subscriber", {"email": _clean(email)}) is not None


async def subscribe(store: DataStore, email: str, phone: Optional[str] = None) -> bool:
    """Returns False when the address was already on the list."""
    if await is_subscribed(store, email):
        return False
    await store.insert("subscriber", {"email": _clean(email), "phone": phone})
    return True


async def unsubscribe(store: DataStore, email: str) -> bool:
    return await store.delete("subscriber", {"email": _clean(email)}) > 0


async def list_subscribers(store: DataStore) -> list[Subscriber]:
    return load_all(Subscriber, await store.find("subscriber", sort=[("created_at", -1)]))


def unsubscribe_token(email: str) -> str:
    return base64.urlsafe_b64encode(_clean(email).encode()).decode()


def email_from_token(token: str) -> Optional[str]:
    try:
        email = base64.urlsafe_b64decode(token.encode()).decode()
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None
    return email if "@" in email else None
