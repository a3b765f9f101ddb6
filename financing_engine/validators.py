"""
Input Validation for the Financing Engine

Validates request data before any record is read or written.
Raises ValidationError (a ValueError) with clear messages for any constraint violation.
"""

from decimal import Decimal

from .errors import ValidationError
from .models import DistributionRequest, InvestmentRequest

HUNDRED = Decimal("100")


class InputValidator:
    """Validates engine requests according to business rules."""

    def validate_investment(self, request: InvestmentRequest) -> None:
        if not request.investor_id:
            raise ValidationError("investor_id is required")
        if not request.opportunity_id:
            raise ValidationError("opportunity_id is required")
        if request.amount <= 0:
            raise ValidationError(f"Investment amount must be positive, got: {request.amount}")
        if request.idempotency_key is not None and not str(request.idempotency_key).strip():
            raise ValidationError("idempotency_key cannot be blank")

    def validate_distribution(self, request: DistributionRequest) -> None:
        """
        Run all distribution validations. Raises ValidationError if any check fails.
        """
        if request.total_investment <= 0:
            raise ValidationError("Total investment must be positive")

        if not (0 <= request.business_share_percentage <= HUNDRED):
            raise ValidationError("Business share percentage must be between 0 and 100")

        for stake in request.investments:
            if stake.amount < 0:
                raise ValidationError(f"Investment amount cannot be negative: {stake.investor_id}")

        if request.terms is not None:
            self._validate_rate("markup_rate", request.terms.markup_rate)
            self._validate_rate("lease_rate", request.terms.lease_rate)

    def validate_returns(self, amount: Decimal, term_months: int) -> None:
        if amount < 0:
            raise ValidationError(f"amount cannot be negative, got: {amount}")
        if term_months <= 0:
            raise ValidationError(f"term_months must be positive, got: {term_months}")

    @staticmethod
    def _validate_rate(name: str, rate: Decimal) -> None:
        if not (0 <= rate <= 1):
            raise ValidationError(f"{name} must be between 0 and 1, got: {rate}")
