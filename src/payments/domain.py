"""Payments bounded context: payment lifecycle and webhook reconciliation.

Handles payment creation across the Australian rails (BPAY, PayID, direct
debit, bank transfer), status transitions with the linked Order, and
authenticated provider callbacks with a full audit trail.
"""

from protean.domain import Domain

from payments.utils.logging import configure_logging, get_logger

configure_logging(log_file_prefix="energihive")

logger = get_logger(__name__)

payments = Domain(name="payments")
