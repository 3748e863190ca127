"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class SchedulerConfig(BaseSettings):
    """EMI scheduler configuration"""
    
    # Storage configuration
    storage_type: str = "memory"  # memory or sqlite
    database_path: str = "emi_scheduler.db"
    database_timeout: float = 5.0  # seconds sqlite waits on a locked database
    
    # Per-device day gate; empty keeps the gate in memory
    day_gate_path: str = ""
    
    # IANA zone used to decide the local day; empty = system local time
    timezone: str = ""
    
    # Scheduling rules
    reminder_lookahead_days: int = 3
    upcoming_days_ahead: int = 7
    expense_category: str = "EMI Payment"
    payment_method: str = "Bank Transfer"
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8091
    
    model_config = SettingsConfigDict(
        env_prefix="EMI_SCHEDULER_",
        env_file=".env",
        case_sensitive=False
    )


# Global configuration instance
config = SchedulerConfig()


def get_config() -> SchedulerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> SchedulerConfig:
    """Reload configuration from environment"""
    global config
    config = SchedulerConfig()
    return config
