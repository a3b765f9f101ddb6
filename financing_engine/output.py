"""
Output Builder

Converts engine results to JSON-ready dictionaries. Money leaves the engine
here as floats rounded to 2 places; everything before this point is Decimal.
"""

from decimal import Decimal

from .models import DistributionResult, ReturnProjection


def to_money(value: Decimal) -> float:
    """Convert Decimal to float with 2 decimal places."""
    return round(float(value), 2)


class OutputBuilder:
    """Builds API response bodies."""

    def distribution(self, result: DistributionResult) -> dict:
        return {
            "contract_type": result.contract_type.value,
            "total_distributable": to_money(result.total_distributable),
            "business_share": to_money(result.business_share),
            "investor_share": to_money(result.investor_share),
            "distribution_per_investor": [
                {
                    "investor_id": share.investor_id,
                    "investment_amount": to_money(share.investment_amount),
                    "profit_share": to_money(share.profit_share),
                    "percentage": to_money(share.percentage),
                }
                for share in result.per_investor
            ],
        }

    def returns(self, projection: ReturnProjection) -> dict:
        return {
            "min_return": to_money(projection.min_return),
            "max_return": to_money(projection.max_return),
            "avg_monthly": to_money(projection.avg_monthly),
        }
