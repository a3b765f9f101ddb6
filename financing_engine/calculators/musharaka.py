"""
Musharaka Distribution Calculator

Partnership contract: profit and loss are both shared in the agreed ratio.
"""

from decimal import Decimal

from ..models import ContractType, DistributionRequest, DistributionResult, InvestorShare

HUNDRED = Decimal("100")


def pro_rata_shares(pool: Decimal, request: DistributionRequest) -> list[InvestorShare]:
    """Split `pool` across investors in proportion to their capital."""
    total = request.total_investment
    return [
        InvestorShare(
            investor_id=stake.investor_id,
            investment_amount=stake.amount,
            profit_share=pool * stake.amount / total,
            percentage=stake.amount / total * HUNDRED,
        )
        for stake in request.investments
    ]


class MusharakaCalculator:
    """Proportional profit and loss sharing."""

    contract_type = ContractType.MUSHARAKA

    def calculate(self, request: DistributionRequest) -> DistributionResult:
        """
        Business Share = Net Profit x Business % / 100
        Investor Share = Net Profit x (100 - Business %) / 100

        A negative net profit is a loss and is split the same way.
        """
        net = request.net_profit
        business_share = net * request.business_share_percentage / HUNDRED
        investor_share = net * (HUNDRED - request.business_share_percentage) / HUNDRED

        return DistributionResult(
            contract_type=self.contract_type,
            total_distributable=net,
            business_share=business_share,
            investor_share=investor_share,
            per_investor=pro_rata_shares(investor_share, request),
        )


class IstisnaCalculator(MusharakaCalculator):
    """Manufacturing contract: profit realised at completion, shared as in musharaka."""

    contract_type = ContractType.ISTISNA
