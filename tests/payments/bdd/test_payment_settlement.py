"""BDD tests for webhook-driven payment settlement."""

from pytest_bdd import scenarios

scenarios("features/payment_settlement.feature")
