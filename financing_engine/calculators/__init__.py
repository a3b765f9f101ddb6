"""
Calculators Package

Provides the profit distribution calculators, one per Islamic contract type.
"""

from .distributor import ProfitDistributor
from .fixed_return import IjaraCalculator, MurabahaCalculator
from .metrics import contract_type_name, profit_margin, return_on_investment
from .mudaraba import MudarabaCalculator
from .musharaka import IstisnaCalculator, MusharakaCalculator

__all__ = [
    "ProfitDistributor",
    "MusharakaCalculator",
    "MudarabaCalculator",
    "MurabahaCalculator",
    "IjaraCalculator",
    "IstisnaCalculator",
    "contract_type_name",
    "profit_margin",
    "return_on_investment",
]
