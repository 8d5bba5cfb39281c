# tvl_payments/services/report_service.py

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, TypedDict

from django.db.models import Q, QuerySet, Sum

from tvl_core.enums import AllocationType, TravelPaymentStatus

from ..models import ZERO, Customer, Payment, PaymentAllocation, TravelRecord
from .lookups import get_record

logger = logging.getLogger("tvl_payments.services.reports")

PK_TYPE = Any


# =============================================================================
# Type Definitions
# =============================================================================

class OutstandingLine(TypedDict):
    travel_record_pk: PK_TYPE
    pnr_number: str
    booking_number: str
    customer_pk: PK_TYPE
    customer_name: str
    travel_date: date
    financial_year: str
    total_amount: Decimal
    paid_amount: Decimal
    pending_amount: Decimal
    payment_status: str


class OutstandingReport(TypedDict):
    customer_pk: Optional[PK_TYPE]
    financial_year: Optional[str]
    lines: List[OutstandingLine]
    pnr_count: int
    total_amount: Decimal
    total_paid: Decimal
    total_pending: Decimal


class TravelRecordPaymentLine(TypedDict):
    payment_pk: PK_TYPE
    voucher_number: str
    payment_date: date
    mode: str
    status: str
    allocated_amount: Decimal
    reversed_amount: Decimal
    net_amount: Decimal


# =============================================================================
# Read projections (no writes, safe to call repeatedly)
# =============================================================================

def _pending_travel_records() -> QuerySet:
    return (
        TravelRecord.objects
        .filter(is_closed=False, payment_status__in=[TravelPaymentStatus.UNPAID, TravelPaymentStatus.PARTIAL])
        .select_related('booking__customer')
        .order_by('created_at', 'travel_date', 'pnr_number')
    )


def outstanding_receivables(customer_id: Any = None, financial_year: Optional[str] = None) -> OutstandingReport:
    """Open PNRs with money still pending, optionally narrowed to one customer and/or financial year."""
    qs = _pending_travel_records()
    if customer_id is not None:
        get_record(Customer, 'Customer', pk=customer_id)
        qs = qs.filter(booking__customer_id=customer_id)
    if financial_year:
        qs = qs.filter(financial_year=financial_year)

    lines: List[OutstandingLine] = []
    total_amount = total_paid = total_pending = ZERO
    for record in qs:
        lines.append({
            'travel_record_pk': record.pk,
            'pnr_number': record.pnr_number,
            'booking_number': record.booking.booking_number,
            'customer_pk': record.booking.customer_id,
            'customer_name': record.booking.customer.name,
            'travel_date': record.travel_date,
            'financial_year': record.financial_year,
            'total_amount': record.total_amount,
            'paid_amount': record.paid_amount,
            'pending_amount': record.pending_amount,
            'payment_status': record.payment_status,
        })
        total_amount += record.total_amount
        total_paid += record.paid_amount
        total_pending += record.pending_amount

    logger.debug(f"[Outstanding][Cust:{customer_id or '-'}][FY:{financial_year or '-'}] {len(lines)} PNR(s).")
    return {
        'customer_pk': customer_id,
        'financial_year': financial_year,
        'lines': lines,
        'pnr_count': len(lines),
        'total_amount': total_amount,
        'total_paid': total_paid,
        'total_pending': total_pending,
    }


def customer_pending_travel_records(customer_id: Any) -> QuerySet:
    """The customer's open PNRs that still have money pending, oldest first (FIFO order)."""
    get_record(Customer, 'Customer', pk=customer_id)
    return _pending_travel_records().filter(booking__customer_id=customer_id)


def travel_record_payments(travel_record_id: Any) -> List[TravelRecordPaymentLine]:
    """Payments that have been applied to a PNR, with what each contributed net of refund reversals."""
    travel_record = get_record(TravelRecord, 'PNR', pk=travel_record_id)
    per_payment: Dict[Any, Dict[str, Decimal]] = {}
    rows = (
        PaymentAllocation.objects.filter(travel_record=travel_record)
        .values('payment_id')
        .annotate(
            allocated=Sum('amount', filter=~Q(allocation_type=AllocationType.REFUND)),
            reversed=Sum('amount', filter=Q(allocation_type=AllocationType.REFUND)),
        )
    )
    for row in rows:
        per_payment[row['payment_id']] = {
            'allocated': row['allocated'] or ZERO,
            'reversed': -(row['reversed'] or ZERO),
        }

    payments = Payment.all_objects.filter(pk__in=per_payment.keys()).order_by('payment_date', 'created_at')
    lines: List[TravelRecordPaymentLine] = []
    for payment in payments:
        figures = per_payment[payment.pk]
        lines.append({
            'payment_pk': payment.pk,
            'voucher_number': payment.voucher_number,
            'payment_date': payment.payment_date,
            'mode': payment.mode,
            'status': payment.status,
            'allocated_amount': figures['allocated'],
            'reversed_amount': figures['reversed'],
            'net_amount': figures['allocated'] - figures['reversed'],
        })
    return lines


def payment_allocations(payment_id: Any) -> QuerySet:
    """Every allocation row of a payment, refund reversals included, in the order they were made."""
    payment = get_record(Payment.all_objects.all(), 'Payment', pk=payment_id)
    return (
        PaymentAllocation.objects.filter(payment=payment)
        .select_related('travel_record', 'allocated_by')
        .order_by('allocated_at', 'created_at')
    )
