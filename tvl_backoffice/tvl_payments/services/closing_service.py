# tvl_payments/services/closing_service.py

import logging
from datetime import date
from typing import Optional

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import Sum

from tvl_core.enums import TravelPaymentStatus, YearEndClosingStatus
from tvl_core.utils import financial_year_bounds

from ..exceptions import RecordClosedError
from ..models import ZERO, CustomerAdvance, Payment, TravelRecord, YearEndClosing
from . import advance_service
from .uow import unit_of_work

logger = logging.getLogger("tvl_payments.services.closing")

PENDING_STATUSES = [TravelPaymentStatus.UNPAID, TravelPaymentStatus.PARTIAL]


def perform_year_end_closing(
        financial_year: str,
        actor: settings.AUTH_USER_MODEL,
        closing_date: Optional[date] = None,
        remarks: str = '',
) -> YearEndClosing:
    """
    Closes a financial year.

    Every PNR of that year or earlier that is still UNPAID or PARTIAL is
    marked closed (it keeps its pending amount but accepts no further
    allocations), the advance caches of the year are refreshed, and a
    FINALIZED snapshot of pending receivables and advance balances is stored.

    Raises:
        DjangoValidationError: Malformed financial year label.
        RecordClosedError: The year has already been closed.
    """
    try:
        financial_year_bounds(financial_year)
    except ValueError as exc:
        raise DjangoValidationError({'financial_year': str(exc)})

    log_prefix = f"[YearEndClosing][FY:{financial_year}][User:{getattr(actor, 'pk', None)}]"
    logger.info(f"{log_prefix} Closing requested.")

    with unit_of_work(actor, log_prefix) as uow:
        if YearEndClosing.objects.select_for_update().filter(financial_year=financial_year).exists():
            logger.warning(f"{log_prefix} Year already closed.")
            raise RecordClosedError(f"Financial year {financial_year} is already closed.")

        pending_records = list(
            TravelRecord.objects.select_for_update()
            .filter(is_closed=False, payment_status__in=PENDING_STATUSES, financial_year__lte=financial_year)
            .order_by('created_at', 'pnr_number')
        )
        total_pending = sum((record.pending_amount for record in pending_records), ZERO)
        for record in pending_records:
            record.is_closed = True
            record.updated_by = actor
            record.save(update_fields=['is_closed', 'updated_by', 'updated_at'])

        customer_ids = set(
            Payment.objects.filter(financial_year=financial_year).values_list('customer_id', flat=True)
        )
        customer_ids |= set(
            CustomerAdvance.objects.filter(financial_year=financial_year).values_list('customer_id', flat=True)
        )
        for customer_id in customer_ids:
            uow.touch_advance(customer_id, financial_year)
        advance_service.refresh_touched_advances(uow)

        total_advance = (
            CustomerAdvance.objects.filter(financial_year=financial_year).aggregate(s=Sum('advance_amount'))['s']
        ) or ZERO

        closing = YearEndClosing(
            financial_year=financial_year,
            closing_date=closing_date or uow.business_date,
            total_pending_receivables=total_pending,
            total_advance_balance=total_advance,
            total_customers=len(customer_ids),
            total_pending_pnrs=len(pending_records),
            status=YearEndClosingStatus.FINALIZED,
            remarks=remarks or '',
            closed_by=actor,
            created_by=actor,
            updated_by=actor,
        )
        closing.save()

    logger.info(
        f"{log_prefix} Finalized: {len(pending_records)} PNR(s) closed with {total_pending} pending, "
        f"advance balance {total_advance} across {len(customer_ids)} customer(s)."
    )
    return closing
