"""
Mudaraba Distribution Calculator
"""

from decimal import Decimal

from ..models import ContractType, DistributionRequest, DistributionResult
from .musharaka import MusharakaCalculator, pro_rata_shares


class MudarabaCalculator:
    """
    Profit-sharing contract between capital providers and the business.

    Profit is shared in the agreed ratio. A loss (net profit <= 0) is borne
    entirely by the investors, pro rata; the business share is zero.
    """

    contract_type = ContractType.MUDARABA

    def __init__(self):
        self._profit_calculator = MusharakaCalculator()

    def calculate(self, request: DistributionRequest) -> DistributionResult:
        net = request.net_profit

        if net <= 0:
            return DistributionResult(
                contract_type=self.contract_type,
                total_distributable=net,
                business_share=Decimal("0"),
                investor_share=net,
                per_investor=pro_rata_shares(net, request),
            )

        result = self._profit_calculator.calculate(request)
        result.contract_type = self.contract_type
        return result
