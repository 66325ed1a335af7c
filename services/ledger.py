"""Persistence for income and expense entries.

Every write goes through one transaction that also resyncs the owning
profile's cached assets, so a committed ledger row always has its matching
``Profile.assets`` value.
"""
import logging

from sqlalchemy import inspect, select
from sqlalchemy.exc import SQLAlchemyError

from models import Profile
from services.balance import BalanceService

logger = logging.getLogger(__name__)


class ResyncError(RuntimeError):
    """Raised when a ledger write could not be followed by an assets resync."""


class LedgerStore:
    """CRUD for one ledger model (``Expense`` or ``Income``)."""

    def __init__(self, session, model, balance: BalanceService | None = None):
        self.session = session
        self.model = model
        self.balance = balance or BalanceService(session)

    def find(self, entry_id: int):
        return self.session.get(self.model, entry_id)

    def get_all_for_user(self, user_id: int):
        stmt = (
            select(self.model)
            .join(Profile, self.model.profile_id == Profile.id)
            .where(Profile.user_id == user_id)
            .order_by(self.model.date.desc(), self.model.id.desc())
        )
        return list(self.session.scalars(stmt))

    def get_all_for_profile(self, profile_id: int):
        stmt = (
            select(self.model)
            .where(self.model.profile_id == profile_id)
            .order_by(self.model.date.desc(), self.model.id.desc())
        )
        return list(self.session.scalars(stmt))

    def save(self, entry) -> bool:
        """Insert or update ``entry`` and resync the affected profile(s).

        On insert the generated id is set on ``entry``. When an update moves
        the entry to another profile the previous profile is resynced too.
        """
        affected = {entry.profile_id}
        state = inspect(entry)
        if state.persistent:
            history = state.attrs.profile_id.history
            affected.update(pid for pid in history.deleted if pid is not None)
        try:
            self.session.add(entry)
            self.session.flush()
            for profile_id in sorted(affected):
                if not self.balance.update_profile_assets(profile_id):
                    raise ResyncError(f'assets resync failed for profile {profile_id}')
            self.session.commit()
        except (SQLAlchemyError, ResyncError):
            logger.exception('Failed to save %s entry', self.model.kind)
            self.session.rollback()
            return False
        logger.info('Saved %s %s on profile %s', self.model.kind, entry.id, entry.profile_id)
        return True

    def delete(self, entry_id: int) -> bool:
        entry = self.find(entry_id)
        if entry is None:
            return False
        # capture before the row is gone
        profile_id = entry.profile_id
        try:
            self.session.delete(entry)
            self.session.flush()
            if not self.balance.update_profile_assets(profile_id):
                raise ResyncError(f'assets resync failed for profile {profile_id}')
            self.session.commit()
        except (SQLAlchemyError, ResyncError):
            logger.exception('Failed to delete %s %s', self.model.kind, entry_id)
            self.session.rollback()
            return False
        logger.info('Deleted %s %s from profile %s', self.model.kind, entry_id, profile_id)
        return True
