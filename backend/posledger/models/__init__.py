from .registers import Register, CashDrawer, PosSession, Shift
from .transactions import Transaction, TransactionItem, Payment, TransactionDiscount
from .discounts import DiscountRule, DiscountRuleTarget, CouponCode, CouponUsage
from .stored_value import (
    GiftCard,
    GiftCardTransaction,
    StoreCredit,
    StoreCreditTransaction,
    LoyaltyAccount,
    LoyaltyTransaction,
)
from .attributes import EntityAttribute
from .audit import AuditEvent
from .sequences import DocumentSequence

__all__ = [
    'Register', 'CashDrawer', 'PosSession', 'Shift',
    'Transaction', 'TransactionItem', 'Payment', 'TransactionDiscount',
    'DiscountRule', 'DiscountRuleTarget', 'CouponCode', 'CouponUsage',
    'GiftCard', 'GiftCardTransaction', 'StoreCredit', 'StoreCreditTransaction',
    'LoyaltyAccount', 'LoyaltyTransaction',
    'EntityAttribute', 'AuditEvent', 'DocumentSequence',
]
