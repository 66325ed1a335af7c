"""Profile balance computation and ``Profile.assets`` resync.

A profile's balance is ``initial_balance + total income - total expenses``.
The value is cached on ``Profile.assets``; every ledger mutation must call
:meth:`BalanceService.update_profile_assets` inside the same transaction so
readers never see a ledger row without its matching assets value.
"""
import logging
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.util import identity_key

from models import Expense, Income, Profile, to_money

logger = logging.getLogger(__name__)


def _profile_total(model, profile_id):
    return (
        select(func.coalesce(func.sum(model.amount), 0))
        .where(model.profile_id == profile_id)
        .scalar_subquery()
    )


class BalanceService:
    def __init__(self, session):
        self.session = session

    # ---------------------- Per profile ----------------------
    def calculate_balance(self, profile_id: int) -> Decimal:
        """Return the current balance of a profile.

        An unknown profile yields ``Decimal('0.00')`` rather than an error;
        callers check ownership (and therefore existence) first.
        """
        initial = self.session.scalar(
            select(Profile.initial_balance).where(Profile.id == profile_id)
        )
        if initial is None:
            logger.debug('calculate_balance: profile %s not found, returning 0', profile_id)
            return to_money(0)
        total_income = self.session.scalar(select(_profile_total(Income, profile_id)))
        total_expenses = self.session.scalar(select(_profile_total(Expense, profile_id)))
        return to_money(to_money(initial) + to_money(total_income) - to_money(total_expenses))

    def update_profile_assets(self, profile_id: int) -> bool:
        """Recompute and store ``Profile.assets`` in a single UPDATE.

        The sums are evaluated by the database at write time, so a late resync
        always reflects every committed ledger row. Does not commit.
        """
        stmt = (
            update(Profile)
            .where(Profile.id == profile_id)
            .values(
                assets=Profile.initial_balance
                + _profile_total(Income, profile_id)
                - _profile_total(Expense, profile_id)
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.session.execute(stmt)
        except SQLAlchemyError:
            logger.exception('Failed to resync assets for profile %s', profile_id)
            return False
        if result.rowcount != 1:
            logger.warning('Resync skipped: profile %s does not exist', profile_id)
            return False
        # the UPDATE bypassed the identity map; reload assets on next access
        loaded = self.session.identity_map.get(identity_key(Profile, profile_id))
        if loaded is not None:
            self.session.expire(loaded, ['assets'])
        logger.debug('Resynced assets for profile %s', profile_id)
        return True

    # ---------------------- Across a user's profiles ----------------------
    def _user_total(self, model, user_id: int) -> Decimal:
        total = self.session.scalar(
            select(func.coalesce(func.sum(model.amount), 0))
            .join(Profile, model.profile_id == Profile.id)
            .where(Profile.user_id == user_id)
        )
        return to_money(total)

    def get_global_total_income(self, user_id: int) -> Decimal:
        return self._user_total(Income, user_id)

    def get_global_total_expenses(self, user_id: int) -> Decimal:
        return self._user_total(Expense, user_id)

    def get_global_initial_balance(self, user_id: int) -> Decimal:
        total = self.session.scalar(
            select(func.coalesce(func.sum(Profile.initial_balance), 0))
            .where(Profile.user_id == user_id)
        )
        return to_money(total)

    def get_global_balance(self, user_id: int) -> Decimal:
        return to_money(
            self.get_global_initial_balance(user_id)
            + self.get_global_total_income(user_id)
            - self.get_global_total_expenses(user_id)
        )
