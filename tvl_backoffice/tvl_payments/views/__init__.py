from .payment import PaymentViewSet
from .reports import LedgerEntryViewSet, OutstandingReceivablesView, YearEndClosingViewSet
from .travel import CustomerViewSet, TravelRecordViewSet
