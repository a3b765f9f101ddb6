"""
Runtime configuration, read from environment variables.
"""

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from .errors import ValidationError


@dataclass(frozen=True)
class Settings:
    """Engine-wide settings. One instance per process."""

    environment: str = "dev"
    store_timeout_seconds: float = 5.0
    murabaha_markup_rate: Decimal = Decimal("0.15")
    ijara_lease_rate: Decimal = Decimal("0.12")
    dual_auth_sla_hours: int = 48
    assignment_sla_hours: int = 72
    invest_rate_limit: int = 10
    invest_rate_window_seconds: int = 60
    rate_limiter_max_keys: int = 10000

    def __post_init__(self):
        if self.store_timeout_seconds <= 0:
            raise ValidationError(f"store_timeout_seconds must be positive, got: {self.store_timeout_seconds}")
        for name in ("murabaha_markup_rate", "ijara_lease_rate"):
            rate = getattr(self, name)
            if not (0 <= rate <= 1):
                raise ValidationError(f"{name} must be between 0 and 1, got: {rate}")
        for name in ("dual_auth_sla_hours", "assignment_sla_hours", "invest_rate_limit",
                     "invest_rate_window_seconds", "rate_limiter_max_keys"):
            if getattr(self, name) <= 0:
                raise ValidationError(f"{name} must be positive, got: {getattr(self, name)}")

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        env = os.environ if environ is None else environ
        try:
            return cls(
                environment=env.get("ENVIRONMENT", "dev"),
                store_timeout_seconds=float(env.get("STORE_TIMEOUT_SECONDS", "5")),
                murabaha_markup_rate=Decimal(env.get("MURABAHA_MARKUP_RATE", "0.15")),
                ijara_lease_rate=Decimal(env.get("IJARA_LEASE_RATE", "0.12")),
                dual_auth_sla_hours=int(env.get("DUAL_AUTH_SLA_HOURS", "48")),
                assignment_sla_hours=int(env.get("ASSIGNMENT_SLA_HOURS", "72")),
                invest_rate_limit=int(env.get("INVEST_RATE_LIMIT", "10")),
                invest_rate_window_seconds=int(env.get("INVEST_RATE_WINDOW", "60")),
                rate_limiter_max_keys=int(env.get("RATE_LIMITER_MAX_KEYS", "10000")),
            )
        except (ValueError, InvalidOperation) as e:
            if isinstance(e, ValidationError):
                raise
            raise ValidationError(f"Invalid engine configuration: {e}") from e
