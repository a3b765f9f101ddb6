"""
Profit Distributor

Validates a distribution request and routes it to the calculator for its
contract type. Raises ValidationError for bad input; there is no partial
result.
"""

import logging
from typing import Iterable, Optional

from ..config import Settings
from ..models import ContractTerms, ContractType, DistributionRequest, DistributionResult, InvestorStake, to_decimal
from ..validators import InputValidator
from .fixed_return import FixedReturnCalculator, IjaraCalculator, MurabahaCalculator
from .mudaraba import MudarabaCalculator
from .musharaka import IstisnaCalculator, MusharakaCalculator

logger = logging.getLogger(__name__)


class ProfitDistributor:
    """Allocates a period's net profit between the business and its investors."""

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or Settings()
        self.default_terms = ContractTerms(
            markup_rate=settings.murabaha_markup_rate,
            lease_rate=settings.ijara_lease_rate,
        )
        self.validator = InputValidator()
        self.calculators = {
            ContractType.MUSHARAKA: MusharakaCalculator(),
            ContractType.MUDARABA: MudarabaCalculator(),
            ContractType.MURABAHA: MurabahaCalculator(),
            ContractType.IJARA: IjaraCalculator(),
            ContractType.ISTISNA: IstisnaCalculator(),
        }

    def distribute(
        self,
        contract_type,
        net_profit,
        total_investment,
        business_share_percentage,
        investments: Iterable,
        terms: Optional[ContractTerms] = None,
    ) -> DistributionResult:
        request = DistributionRequest(
            contract_type=ContractType.parse(contract_type),
            net_profit=to_decimal(net_profit, "net_profit"),
            total_investment=to_decimal(total_investment, "total_investment"),
            business_share_percentage=to_decimal(business_share_percentage, "business_share_percentage"),
            investments=[
                stake if isinstance(stake, InvestorStake) else InvestorStake.from_dict(stake)
                for stake in investments
            ],
            terms=terms,
        )
        return self.distribute_request(request)

    def distribute_request(self, request: DistributionRequest) -> DistributionResult:
        self.validator.validate_distribution(request)

        calculator = self.calculators[request.contract_type]
        if isinstance(calculator, FixedReturnCalculator):
            result = calculator.calculate(request, request.terms or self.default_terms)
        else:
            result = calculator.calculate(request)

        logger.info(
            f"Distributed {request.net_profit} under {request.contract_type.value} "
            f"across {len(request.investments)} investors"
        )
        return result
