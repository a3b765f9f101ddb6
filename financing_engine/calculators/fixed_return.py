"""
Fixed-Return Distribution Calculators

Murabaha (cost plus markup) and Ijara (lease) pay investors a fixed rate on
their capital regardless of the period's profit; the business keeps or
absorbs the remainder.
"""

from decimal import Decimal

from ..models import ContractTerms, ContractType, DistributionRequest, DistributionResult, InvestorShare

HUNDRED = Decimal("100")


class FixedReturnCalculator:
    contract_type: ContractType
    rate_field: str

    def calculate(self, request: DistributionRequest, terms: ContractTerms) -> DistributionResult:
        """
        Investor Return = Investment Amount x Rate
        Business Share  = Net Profit - Sum(Investor Returns)

        The business share may be negative when profit does not cover the
        fixed returns.
        """
        rate = getattr(terms, self.rate_field)
        total = request.total_investment

        per_investor = [
            InvestorShare(
                investor_id=stake.investor_id,
                investment_amount=stake.amount,
                profit_share=stake.amount * rate,
                percentage=stake.amount / total * HUNDRED,
            )
            for stake in request.investments
        ]
        investor_share = sum((share.profit_share for share in per_investor), Decimal("0"))

        return DistributionResult(
            contract_type=self.contract_type,
            total_distributable=request.net_profit,
            business_share=request.net_profit - investor_share,
            investor_share=investor_share,
            per_investor=per_investor,
        )


class MurabahaCalculator(FixedReturnCalculator):
    contract_type = ContractType.MURABAHA
    rate_field = "markup_rate"


class IjaraCalculator(FixedReturnCalculator):
    contract_type = ContractType.IJARA
    rate_field = "lease_rate"
