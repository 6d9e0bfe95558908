# Package initialization
# Import all models to ensure relationships are properly established
from .insurer import Insurer
from .transaction import Transaction
from .expense import Expense
from .insurance_payment import InsurancePayment

__all__ = [
    "Insurer",
    "Transaction",
    "Expense",
    "InsurancePayment",
]
