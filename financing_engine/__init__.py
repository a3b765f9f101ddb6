"""
SHARIAH FINANCING WORKFLOW ENGINE
Application lifecycle, approval authority, investments and profit distribution.
"""

from .calculators import ProfitDistributor
from .config import Settings
from .models import DistributionResult, OperationResult
from .processor import InvestmentProcessor, calculate_returns
from .service import EngineService
from .status_machine import validate_transition
from .workflow import ApplicationWorkflow

__all__ = [
    'EngineService',
    'Settings',
    'ApplicationWorkflow',
    'InvestmentProcessor',
    'ProfitDistributor',
    'OperationResult',
    'DistributionResult',
    'calculate_returns',
    'validate_transition',
]
