"""
Errors raised by the stock ledger.
"""
from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base class for ledger errors; carries enough context for a user-facing message."""

    code = 'ledger_error'

    def __init__(self, message: str, product_id: Optional[Any] = None,
                 quantity: Optional[int] = None, balance: Optional[int] = None, **context):
        super().__init__(message)
        self.message = message
        self.product_id = product_id
        self.quantity = quantity
        self.balance = balance
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'error': self.message, 'code': self.code}
        if self.product_id is not None:
            data['product_id'] = str(self.product_id)
        if self.quantity is not None:
            data['quantity'] = self.quantity
        if self.balance is not None:
            data['balance'] = self.balance
        data.update(self.context)
        return data


class ValidationError(LedgerError):
    """Malformed or missing input. Never retried."""

    code = 'validation_error'


class NotFoundError(LedgerError):
    """Unknown, inactive or out-of-scope product."""

    code = 'not_found'


class InsufficientStockError(LedgerError):
    """An 'out' movement asked for more than the current balance."""

    code = 'insufficient_stock'

    def __init__(self, product_id, quantity: int, balance: int):
        super().__init__(
            f"Insufficient stock: requested {quantity}, available {balance}",
            product_id=product_id,
            quantity=quantity,
            balance=balance,
        )


class PersistenceError(LedgerError):
    """The ledger transaction failed; nothing was applied."""

    code = 'persistence_error'
