import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from models import Profile
from services.balance import BalanceService

logger = logging.getLogger(__name__)


class ProfileStore:
    def __init__(self, session, balance: BalanceService | None = None):
        self.session = session
        self.balance = balance or BalanceService(session)

    def find(self, profile_id: int):
        return self.session.get(Profile, profile_id)

    def get_all_for_user(self, user_id: int):
        stmt = select(Profile).where(Profile.user_id == user_id).order_by(Profile.name, Profile.id)
        return list(self.session.scalars(stmt))

    def save(self, profile) -> bool:
        """Insert or update ``profile`` and recompute its assets.

        ``assets`` is never taken from the caller: a changed initial balance
        shifts the balance, so it is always resynced before commit.
        """
        try:
            self.session.add(profile)
            self.session.flush()
            if not self.balance.update_profile_assets(profile.id):
                self.session.rollback()
                return False
            self.session.commit()
        except SQLAlchemyError:
            logger.exception('Failed to save profile %s', profile.name)
            self.session.rollback()
            return False
        logger.info('Saved profile %s for user %s', profile.id, profile.user_id)
        return True

    def delete(self, profile_id: int) -> bool:
        profile = self.find(profile_id)
        if profile is None:
            return False
        try:
            # ledger rows go with it (relationship cascade)
            self.session.delete(profile)
            self.session.commit()
        except SQLAlchemyError:
            logger.exception('Failed to delete profile %s', profile_id)
            self.session.rollback()
            return False
        logger.info('Deleted profile %s', profile_id)
        return True
