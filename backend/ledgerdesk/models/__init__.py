from .accounts import Account
from .orders import Order
from .ledger import LedgerEvent, Invoice, Payment, OpeningBalance, PartialPayment, InvoiceLine
from .shifts import Shift
from .treasury import TreasuryTransaction

__all__ = [
    'Account',
    'Order',
    'LedgerEvent', 'Invoice', 'Payment', 'OpeningBalance', 'PartialPayment', 'InvoiceLine',
    'Shift',
    'TreasuryTransaction',
]
