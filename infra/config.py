"""
Configuration Manager
---------------------
YAML configuration validated by pydantic models, with environment
variable overrides.

Example config.yaml:

    database: follow_me_gpt.db
    logging:
      level: INFO
      dir: logs
    llm:
      base_url: https://api.openai.com/v1
      model: gpt-4o-mini
      api_key_env: OPENAI_API_KEY
    policy:
      allow_paths: ["~/Documents"]
      deny_paths: ["~/.ssh"]
      allowed_capabilities: [files.read, search.read]
      require_confirmation: true

Environment overrides use FOLLOWME_<SECTION>_<KEY>, e.g.
FOLLOWME_LLM_MODEL=gpt-4o or FOLLOWME_POLICY_REQUIRE_CONFIRMATION=false.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional
import logging
import os

import yaml
from pydantic import BaseModel, Field, field_validator

from core.types import Capability, Policy

ENV_PREFIX = "FOLLOWME_"

_logger = logging.getLogger("followme.infra.config")


class LoggingSettings(BaseModel):
    level: str = "INFO"
    dir: str = "logs"
    console: bool = True
    file: bool = True

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        value = value.upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return value


class LLMSettings(BaseModel):
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    api_key_env: str = "OPENAI_API_KEY"  # Environment variable name (NOT the actual key)
    timeout_seconds: float = Field(default=60.0, gt=0)
    temperature: float = Field(default=0.0, ge=0, le=2)
    mock: bool = False


class PolicySettings(BaseModel):
    allow_paths: List[str] = Field(default_factory=list)
    deny_paths: List[str] = Field(default_factory=list)
    allowed_capabilities: List[Capability] = Field(default_factory=list)
    require_confirmation: bool = True

    def to_policy(self) -> Policy:
        return Policy(
            allow_paths=[os.path.expanduser(p) for p in self.allow_paths],
            deny_paths=[os.path.expanduser(p) for p in self.deny_paths],
            allowed_capabilities=[c.value for c in self.allowed_capabilities],
            require_confirmation=self.require_confirmation,
        )


class AppConfig(BaseModel):
    """Top-level application configuration."""
    database: str = "follow_me_gpt.db"
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    policy: Optional[PolicySettings] = Field(default_factory=PolicySettings)

    def to_policy(self) -> Optional[Policy]:
        """Policy for execution contexts; None means unrestricted."""
        return self.policy.to_policy() if self.policy is not None else None


def _apply_env_overrides(data: Dict[str, Any], environ: Dict[str, str]) -> Dict[str, Any]:
    """Overlay FOLLOWME_<SECTION>_<KEY> variables onto the raw config."""
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        parts = key[len(ENV_PREFIX):].lower().split("_", 1)
        section = parts[0]

        if section not in AppConfig.model_fields:
            continue

        if len(parts) == 1:
            data[section] = value
            continue

        target = data.get(section)
        if not isinstance(target, dict):
            target = {}
            data[section] = target

        # List-valued settings are comma separated
        if parts[1] in ("allow_paths", "deny_paths", "allowed_capabilities"):
            target[parts[1]] = [v.strip() for v in value.split(",") if v.strip()]
        else:
            target[parts[1]] = value
    return data


def load_config(path: Optional[str] = "config.yaml", environ: Optional[Dict[str, str]] = None) -> AppConfig:
    """
    Load and validate configuration.

    A missing file yields defaults. A malformed file raises
    pydantic.ValidationError or yaml.YAMLError.
    """
    data: Dict[str, Any] = {}
    if path:
        config_path = Path(path)
        if config_path.exists():
            with open(config_path, "r") as f:
                data = yaml.safe_load(f) or {}
            _logger.info(f"Loaded config from {config_path}")
        else:
            _logger.warning(f"Config file not found: {config_path}")

    data = _apply_env_overrides(data, dict(os.environ) if environ is None else environ)
    return AppConfig.model_validate(data)
