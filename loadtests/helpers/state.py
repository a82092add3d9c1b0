"""Per-user state tracking for Locust load test scenarios.

Each Locust user instance maintains its own state, no cross-user sharing.
State tracks entity IDs returned by creation endpoints so follow-up
operations can reference them.
"""

from dataclasses import dataclass, field


@dataclass
class PaymentState:
    """Tracks state for an order and its payment."""

    headers: dict = field(default_factory=dict)
    order_id: str | None = None
    total: float = 0.0
    payment_id: str | None = None
    payment: dict = field(default_factory=dict)
    provider: str | None = None
    current_status: str = "pending"
