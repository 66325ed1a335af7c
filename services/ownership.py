"""Ownership checks used by views before touching a profile or ledger entry.

Profiles belong to a user directly; ledger entries belong to a user through
their ``profile_id``. The stores never check this themselves.
"""
import logging

from sqlalchemy import func, select

from models import Profile

logger = logging.getLogger(__name__)


def is_owned_by_user(session, profile_id, user_id) -> bool:
    if profile_id is None or user_id is None:
        return False
    count = session.scalar(
        select(func.count(Profile.id)).where(Profile.id == profile_id, Profile.user_id == user_id)
    )
    return bool(count)


def owned_profile(session, profile_id, user_id):
    """Return the profile if ``user_id`` owns it, else None."""
    profile = session.get(Profile, profile_id)
    if profile is None:
        return None
    if profile.user_id != user_id:
        logger.warning('User %s denied access to profile %s', user_id, profile_id)
        return None
    return profile


def owned_entry(session, model, entry_id, user_id):
    """Return the ledger entry if its parent profile belongs to ``user_id``, else None."""
    entry = session.get(model, entry_id)
    if entry is None:
        return None
    if not is_owned_by_user(session, entry.profile_id, user_id):
        logger.warning('User %s denied access to %s %s', user_id, model.kind, entry_id)
        return None
    return entry
