from services.balance import BalanceService
from services.ledger import LedgerStore, ResyncError
from services.ownership import is_owned_by_user, owned_entry, owned_profile
from services.profiles import ProfileStore

__all__ = [
    'BalanceService',
    'LedgerStore',
    'ProfileStore',
    'ResyncError',
    'is_owned_by_user',
    'owned_entry',
    'owned_profile',
]
