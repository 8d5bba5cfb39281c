# tvl_core/enums.py

from django.db import models
from django.utils.translation import gettext_lazy as _

# -------------------- VOUCHERS & LEDGER --------------------

class VoucherType(models.TextChoices):
    """
    Kind of monetary movement a voucher number is issued for.
    The display prefix of a sequence is the first three letters of the value
    (payment -> PAY, receipt -> REC, refund -> REF).
    """
    PAYMENT = 'payment', _('Payment')
    RECEIPT = 'receipt', _('Receipt')        # Customer money received
    REFUND = 'refund', _('Refund')           # Money returned to a customer
    JOURNAL = 'journal', _('Journal')        # Allocation / internal movements
    CONTRA = 'contra', _('Contra')


class LedgerEntryType(models.TextChoices):
    CREDIT = 'CREDIT', _('Credit')
    DEBIT = 'DEBIT', _('Debit')


# -------------------- PAYMENTS --------------------

class PaymentMode(models.TextChoices):
    """How the customer paid. Recorded only, never processed."""
    CASH = 'CASH', _('Cash')
    CARD = 'CARD', _('Card')
    BANK_TRANSFER = 'BANK_TRANSFER', _('Bank Transfer')
    CHEQUE = 'CHEQUE', _('Cheque')


class PaymentStatus(models.TextChoices):
    """
    Lifecycle of a Payment.
    RECEIVED -> ADJUSTED once fully allocated, RECEIVED/ADJUSTED -> REFUNDED on refund,
    any -> DELETED on soft delete.
    """
    RECEIVED = 'RECEIVED', _('Received')
    ADJUSTED = 'ADJUSTED', _('Adjusted')
    REFUNDED = 'REFUNDED', _('Refunded')
    DELETED = 'DELETED', _('Deleted')


class VerificationStatus(models.TextChoices):
    PENDING = 'PENDING', _('Pending')
    VERIFIED = 'VERIFIED', _('Verified')
    REJECTED = 'REJECTED', _('Rejected')


class VerificationAction(models.TextChoices):
    VERIFY = 'VERIFY', _('Verify')
    REJECT = 'REJECT', _('Reject')


class AllocationType(models.TextChoices):
    MANUAL = 'MANUAL', _('Manual')
    AUTO = 'AUTO', _('Automatic')
    REFUND = 'REFUND', _('Refund Reversal')  # Negative amount, never counted against the payment total


# -------------------- BOOKINGS & TRAVEL RECORDS --------------------

class TravelPaymentStatus(models.TextChoices):
    """Derived from paid vs. total on a travel record (PNR)."""
    UNPAID = 'UNPAID', _('Unpaid')
    PARTIAL = 'PARTIAL', _('Partially Paid')
    PAID = 'PAID', _('Paid')


class BookingStatus(models.TextChoices):
    OPEN = 'OPEN', _('Open')
    CONFIRMED = 'CONFIRMED', _('Confirmed')
    FUNDS_SETTLED = 'FUNDS_SETTLED', _('Funds Settled')
    CANCELLED = 'CANCELLED', _('Cancelled')


class AccountStatus(models.TextChoices):
    OPEN = 'OPEN', _('Open')
    SETTLED = 'SETTLED', _('Settled')


class YearEndClosingStatus(models.TextChoices):
    DRAFT = 'DRAFT', _('Draft')
    FINALIZED = 'FINALIZED', _('Finalized')


# -------------------- STAFF --------------------

class Department(models.TextChoices):
    """Back-office department of a staff user. Only ACCOUNTS may move money."""
    ACCOUNTS = 'ACCOUNTS', _('Accounts')
    SALES = 'SALES', _('Sales')
    OPERATIONS = 'OPERATIONS', _('Operations')
    ADMIN = 'ADMIN', _('Administration')
