"""Models package."""

from .user import User
from .credit_balance import CreditBalance
from .credit_ledger import CreditLedgerEntry
from .photo import Photo
