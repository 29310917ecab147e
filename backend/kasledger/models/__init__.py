from kasledger.models.account import Account
from kasledger.models.base import Base
from kasledger.models.category import Category
from kasledger.models.ledger_head import LedgerHead
from kasledger.models.monthly_balance import MonthlyAccountBalance, MonthlyBalance
from kasledger.models.transaction import Transaction
from kasledger.models.user import User

__all__ = [
    "Account",
    "Base",
    "Category",
    "LedgerHead",
    "MonthlyAccountBalance",
    "MonthlyBalance",
    "Transaction",
    "User",
]
