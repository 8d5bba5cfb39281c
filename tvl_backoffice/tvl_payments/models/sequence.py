# tvl_payments/models/sequence.py

import logging

from django.db import models
from django.utils.translation import gettext_lazy as _
from safedelete import NO_DELETE

from tvl_core.enums import VoucherType
from tvl_core.validators import validate_financial_year_label

from .base import AuditedModel

logger = logging.getLogger(__name__)


class VoucherSequence(AuditedModel):
    """
    Counter for the next voucher number of one voucher type in one financial
    year. The only shared mutable counter in the ledger; always incremented
    under a row lock by sequence_service.next_voucher().
    """
    _safedelete_policy = NO_DELETE

    voucher_type = models.CharField(
        max_length=20,
        choices=VoucherType.choices,
        db_index=True,
        help_text=_("The type of voucher this sequence is for.")
    )
    financial_year = models.CharField(
        max_length=7,
        db_index=True,
        validators=[validate_financial_year_label],
        help_text=_("Financial year label, e.g. 2024-25.")
    )
    prefix = models.CharField(
        max_length=10,
        help_text=_("Display prefix, e.g. 'PAY'.")
    )
    padding_digits = models.PositiveSmallIntegerField(
        default=4,
        help_text=_("Number of digits for padding (e.g., 4 means 0001).")
    )
    last_number = models.PositiveIntegerField(
        default=0,
        help_text=_("The last number issued in this sequence.")
    )

    class Meta:
        verbose_name = _("Voucher Sequence")
        verbose_name_plural = _("Voucher Sequences")
        unique_together = ('voucher_type', 'financial_year')
        ordering = ['financial_year', 'voucher_type']

    def __str__(self):
        return f"{self.get_voucher_type_display()} sequence for {self.financial_year}"

    def format_number(self, number: int) -> str:
        """Formats an issued number as PREFIX/FY/0001."""
        if not isinstance(number, int) or number <= 0:
            raise ValueError(f"Voucher numbers start at 1, got {number!r}.")
        return f"{self.prefix}/{self.financial_year}/{str(number).zfill(self.padding_digits)}"
