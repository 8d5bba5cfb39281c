# tvl_payments/services/advance_service.py

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError
from django.db.models import Sum
from django.utils import timezone

from tvl_core.enums import AllocationType
from tvl_core.utils import financial_year as financial_year_for, round_decimal, today

from ..models import ZERO, Customer, CustomerAdvance, Payment, PaymentAllocation, live_payment_filter
from .lookups import get_record
from .uow import UnitOfWork, unit_of_work

logger = logging.getLogger("tvl_payments.services.advance")


def compute_customer_advance(customer_id: Any, financial_year: str) -> Decimal:
    """
    Received-but-unapplied balance of a customer in a financial year:
    amounts of RECEIVED/ADJUSTED receipts minus the non-refund allocations
    made from those same receipts.
    """
    payments = Payment.objects.filter(live_payment_filter(), customer_id=customer_id, financial_year=financial_year)
    received = payments.aggregate(s=Sum('amount'))['s'] or ZERO
    allocated = (
        PaymentAllocation.objects
        .filter(payment__in=payments.values('pk'))
        .exclude(allocation_type=AllocationType.REFUND)
        .aggregate(s=Sum('amount'))['s']
    ) or ZERO
    return round_decimal(received - allocated)


def _refresh_advance(uow: UnitOfWork, customer_id: Any, financial_year: str) -> CustomerAdvance:
    """Recomputes and stores the cached advance. MUST run inside the caller's unit of work."""
    uow.assert_active()
    amount = compute_customer_advance(customer_id, financial_year)
    lookup = {'customer_id': customer_id, 'financial_year': financial_year}
    try:
        advance, created = CustomerAdvance.objects.select_for_update().get_or_create(
            **lookup,
            defaults={
                'advance_amount': amount,
                'last_recalculated_at': timezone.now(),
                'created_by': uow.actor,
                'updated_by': uow.actor,
            }
        )
    except (IntegrityError, DjangoValidationError):
        # A concurrent unit of work created the row between our read and insert.
        advance, created = CustomerAdvance.objects.select_for_update().get(**lookup), False
    if not created:
        advance.advance_amount = amount
        advance.last_recalculated_at = timezone.now()
        advance.updated_by = uow.actor
        advance.save(update_fields=['advance_amount', 'last_recalculated_at', 'updated_by', 'updated_at'])
    logger.debug(f"[Advance][Cust:{customer_id}][FY:{financial_year}] Cached advance {amount}.")
    return advance


def refresh_touched_advances(uow: UnitOfWork) -> None:
    """Refreshes every (customer, financial year) cache the operation touched, in a stable lock order."""
    for customer_id, fy in sorted(uow.touched_advances, key=lambda key: (str(key[0]), key[1])):
        _refresh_advance(uow, customer_id, fy)
    uow.touched_advances.clear()


def recalculate_customer_advance(customer_id: Any, financial_year: str, actor=None) -> CustomerAdvance:
    log_prefix = f"[RecalcAdvance][Cust:{customer_id}][FY:{financial_year}]"
    get_record(Customer, 'Customer', pk=customer_id)
    with unit_of_work(actor, log_prefix) as uow:
        advance = _refresh_advance(uow, customer_id, financial_year)
    logger.info(f"{log_prefix} Advance recalculated: {advance.advance_amount}.")
    return advance


def get_customer_advance(customer_id: Any, financial_year: Optional[str] = None) -> Dict[str, Any]:
    """
    Read projection for payment-application screens. The figure returned is
    always computed from payments and allocations; the cached row is reported
    alongside for comparison and is not written here.
    """
    customer = get_record(Customer, 'Customer', pk=customer_id)
    fy = financial_year or financial_year_for(today())
    cached = CustomerAdvance.objects.filter(customer=customer, financial_year=fy).first()
    return {
        'customer_id': customer.pk,
        'customer_name': customer.name,
        'financial_year': fy,
        'advance_amount': compute_customer_advance(customer.pk, fy),
        'cached_amount': cached.advance_amount if cached else None,
        'last_recalculated_at': cached.last_recalculated_at if cached else None,
    }
