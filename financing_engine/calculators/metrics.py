"""
Reporting Metrics

Small pure helpers used alongside distribution results in financial reports.
"""

from decimal import Decimal

from ..models import ContractType

HUNDRED = Decimal("100")

CONTRACT_TYPE_NAMES = {
    ContractType.MUSHARAKA: "Musharaka (Partnership)",
    ContractType.MUDARABA: "Mudaraba (Profit Sharing)",
    ContractType.MURABAHA: "Murabaha (Cost Plus)",
    ContractType.IJARA: "Ijara (Lease)",
    ContractType.ISTISNA: "Istisna (Manufacturing)",
}


def profit_margin(revenue: Decimal, expenses: Decimal) -> Decimal:
    """Net profit as a percentage of revenue; 0 when there is no revenue."""
    if revenue == 0:
        return Decimal("0")
    return (revenue - expenses) / revenue * HUNDRED


def return_on_investment(initial_investment: Decimal, profit_earned: Decimal) -> Decimal:
    if initial_investment == 0:
        return Decimal("0")
    return profit_earned / initial_investment * HUNDRED


def contract_type_name(contract_type) -> str:
    return CONTRACT_TYPE_NAMES[ContractType.parse(contract_type)]
