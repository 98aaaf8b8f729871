"""
Configuration for the Login Management Engine.

Settings are read from ``LOGIN_ENGINE_*`` environment variables and can be
overlaid with a JSON configuration file.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Literal, Optional, Union

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Dropdown codes used by the relational store for item status and type.
DEFAULT_STATUS_CODES: Dict[str, int] = {
    "QUEUED": -4106,
    "SUCCESS": -4107,
    "ERROR": -4108,
}

DEFAULT_TYPE_CODES: Dict[str, int] = {
    "CREATE": 3833,
    "BLOCK": -4104,
    "UNBLOCK": -4105,
    "RESET": -4103,
}


class Settings(BaseSettings):
    """Runtime configuration."""

    model_config = SettingsConfigDict(env_prefix="LOGIN_ENGINE_", extra="ignore")

    # Identity endpoint
    auth_url: str = "https://auth.partner.example.com/oauth2/token"
    authorization_header: str = ""
    token_scope: str = "partner_management"
    token_safety_margin_seconds: int = 30

    # Partner API
    base_url: str = "https://api.partner.example.com"
    partner_uuid: str = ""
    user_profile_id: int = 1
    block_history: str = "Login management block"
    request_timeout: float = 30.0
    mock_mode: bool = False

    # Processing
    pacing_delay_seconds: float = 0.5
    log_max_length: int = 50
    scheduler_enabled: bool = True
    schedule_interval_seconds: int = 300

    # Storage
    store_backend: Literal["memory", "postgres"] = "memory"
    database_url: Optional[str] = None
    state_file: Optional[str] = None
    audit_dir: str = "audit_logs"

    # Logging
    log_level: str = "INFO"

    status_codes: Dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_STATUS_CODES))
    type_codes: Dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_TYPE_CODES))

    @classmethod
    def from_file(cls, config_path: Optional[Union[str, Path]] = None, **overrides: Any) -> "Settings":
        """
        Build settings from the environment, overlaid with a JSON file.

        Args:
            config_path: Optional path to a JSON object of setting values
            **overrides: Explicit values that win over both sources

        Returns:
            Settings instance
        """
        values: Dict[str, Any] = {}
        if config_path:
            path = Path(config_path)
            with open(path, "r", encoding="utf-8") as f:
                file_config = json.load(f)
            if not isinstance(file_config, dict):
                raise ValueError(f"Config file {path} must contain a JSON object")
            values.update(file_config)
            logger.info(f"Loaded configuration from {path}")
        values.update(overrides)
        return cls(**values)

    def validate_runtime(self) -> None:
        """Raise ValueError listing every setting required for real API access."""
        errors = []

        if not self.mock_mode:
            if not self.authorization_header:
                errors.append("authorization_header is required")
            if not self.partner_uuid:
                errors.append("partner_uuid is required")

        if self.store_backend == "postgres" and not self.database_url:
            errors.append("database_url is required for the postgres store")

        if errors:
            raise ValueError("Config errors:\n  " + "\n  ".join(errors))
