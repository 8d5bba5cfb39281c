# tvl_payments/management/commands/reconcile_pnr_balances.py

import logging

from django.core.management.base import BaseCommand, CommandError
from django.db.models import Sum

from tvl_core.utils import financial_year_bounds

from tvl_payments.exceptions import LedgerError
from tvl_payments.models import ZERO, TravelRecord
from tvl_payments.services.allocation_service import refresh_travel_record
from tvl_payments.services.lookups import get_record
from tvl_payments.services.uow import unit_of_work

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = (
        "Compares each PNR's stored paid / pending / payment status with the sum of its allocations. "
        "Reports drift by default; --fix rewrites the drifted PNRs from their allocations."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            '--fix',
            action='store_true',
            help='Repair drifted PNRs (each in its own transaction).',
        )
        parser.add_argument(
            '--financial-year',
            type=str,
            help='Only check PNRs of this financial year, e.g. 2024-25.',
        )
        parser.add_argument(
            '--pnr',
            nargs='+',
            type=str,
            help='Only check these PNR numbers.',
        )

    def handle(self, *args, **options):
        fix = options['fix']
        fy = options.get('financial_year')
        pnr_numbers = options.get('pnr')

        queryset = TravelRecord.objects.annotate(allocated=Sum('allocations__amount')).order_by('created_at', 'pnr_number')
        if fy:
            try:
                financial_year_bounds(fy)
            except ValueError as exc:
                raise CommandError(str(exc))
            queryset = queryset.filter(financial_year=fy)
        if pnr_numbers:
            queryset = queryset.filter(pnr_number__in=pnr_numbers)

        checked = drifted = repaired = 0
        for record in queryset.iterator():
            checked += 1
            paid = record.allocated or ZERO
            expected_pending = max(ZERO, record.total_amount - paid)
            expected_status = TravelRecord.derive_payment_status(record.total_amount, paid)
            if (record.paid_amount, record.pending_amount, record.payment_status) == (paid, expected_pending, expected_status):
                continue

            drifted += 1
            self.stdout.write(self.style.WARNING(
                f"PNR {record.pnr_number}: stored paid {record.paid_amount} / pending {record.pending_amount} / "
                f"{record.payment_status}, allocations say {paid} / {expected_pending} / {expected_status}"
            ))
            if not fix:
                continue

            log_prefix = f"[ReconcilePNR][PNR:{record.pnr_number}]"
            try:
                with unit_of_work(None, log_prefix) as uow:
                    locked = get_record(TravelRecord.objects.select_for_update(), 'PNR', pk=record.pk)
                    refresh_travel_record(locked, uow)
            except LedgerError as exc:
                self.stderr.write(self.style.ERROR(f"PNR {record.pnr_number}: repair failed: {exc.message}"))
                continue
            repaired += 1
            logger.info(f"{log_prefix} Repaired from allocations.")

        summary = f"Checked {checked} PNR(s): {drifted} drifted"
        if fix:
            summary += f", {repaired} repaired"
        self.stdout.write(self.style.SUCCESS(summary + "."))
