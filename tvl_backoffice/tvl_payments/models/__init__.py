from .base import AuditedModel, ImmutableAuditedModel, ZERO
from .booking import Booking, BookingAccount, Customer, TravelRecord
from .payment import BREAKDOWN_FIELDS, Payment, live_payment_filter
from .allocation import PaymentAllocation
from .ledger import LedgerEntry
from .sequence import VoucherSequence
from .advance import CustomerAdvance
from .closing import YearEndClosing

__all__ = [
    'AuditedModel', 'ImmutableAuditedModel', 'ZERO',
    'Customer', 'Booking', 'BookingAccount', 'TravelRecord',
    'Payment', 'BREAKDOWN_FIELDS', 'live_payment_filter',
    'PaymentAllocation', 'LedgerEntry', 'VoucherSequence',
    'CustomerAdvance', 'YearEndClosing',
]
