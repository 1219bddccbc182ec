"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineConfig(BaseSettings):
    """Lending engine configuration"""

    model_config = SettingsConfigDict(
        env_prefix="LENDING_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Currency
    default_currency: str = "INR"

    # Reverse rate solver
    solver_max_iterations: int = 200
    solver_tolerance: Optional[str] = None  # Absolute installment tolerance; unset = currency minor unit
    solver_max_period_rate: str = "100"  # Upper bracket, percent per period

    # Interest accrual
    days_in_year: int = 365

    # Servicing rules
    excess_spread_installments: int = 3  # Upcoming installments sharing an overpayment
    late_fee_rate: str = "2.0"           # Percent of the installment amount
    grace_period_days: int = 0

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text


# Global configuration instance
config = EngineConfig()


def get_config() -> EngineConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> EngineConfig:
    """Reload configuration from environment"""
    global config
    config = EngineConfig()
    return config
