"""
Workspace configuration.

Settings live in `.sfca/config.yaml` at the workspace root. A missing file
yields the defaults; an unreadable or invalid file is reported in the log and
also yields the defaults, so a typo never takes the editor integration down.

Example:

    scanner:
      rule_selector: "Recommended"
      config_file: code-analyzer.yml
    analysis:
      analyze_on_open: true
      analyze_on_save: true
    severity:
      error_max: 2
      warning_max: 4
    apex_guru:
      enabled: true
      instance_url: https://example.my.salesforce.com
    telemetry:
      enabled: false
"""

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from .constants import APEX_GURU_MAX_TIMEOUT_SECONDS, APEX_GURU_RETRY_INTERVAL_MILLIS

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".sfca"
CONFIG_FILE_NAME = "config.yaml"


class ScannerSettings(BaseModel):
    """How the Code Analyzer CLI is invoked."""
    command: str = "sf"
    rule_selector: Optional[str] = None
    config_file: Optional[str] = None


class AnalysisSettings(BaseModel):
    """When scans are triggered automatically."""
    analyze_on_open: bool = False
    analyze_on_save: bool = True


class SeveritySettings(BaseModel):
    """Thresholds for the default severity policy (inclusive upper bounds)."""
    error_max: int = Field(default=2, ge=0, le=5)
    warning_max: int = Field(default=4, ge=0, le=5)

    @model_validator(mode="after")
    def _ordered(self) -> "SeveritySettings":
        if self.warning_max < self.error_max:
            raise ValueError("warning_max must be >= error_max")
        return self


class ApexGuruSettings(BaseModel):
    """Remote job-based analysis."""
    enabled: bool = False
    instance_url: Optional[str] = None
    access_token_env: str = "SFCA_ACCESS_TOKEN"
    max_wait_seconds: float = APEX_GURU_MAX_TIMEOUT_SECONDS
    retry_interval_ms: int = APEX_GURU_RETRY_INTERVAL_MILLIS

    @property
    def access_token(self) -> Optional[str]:
        return os.getenv(self.access_token_env) or None


class TelemetrySettings(BaseModel):
    enabled: bool = False


class Settings(BaseModel):
    """Top-level settings model."""
    scanner: ScannerSettings = Field(default_factory=ScannerSettings)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    severity: SeveritySettings = Field(default_factory=SeveritySettings)
    apex_guru: ApexGuruSettings = Field(default_factory=ApexGuruSettings)
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings)
    log_level: str = "INFO"


def config_path_for(root: Path) -> Path:
    """Return the path of the config file for a workspace root."""
    return root / CONFIG_DIR_NAME / CONFIG_FILE_NAME


def load_settings(root: Path) -> Settings:
    """
    Load settings for a workspace.

    Args:
        root: The workspace root directory.

    Returns:
        Settings: Parsed settings, or defaults if the file is missing or invalid.
    """
    path = config_path_for(root)
    if not path.exists():
        logger.info(f"No config found at {path}. Using defaults.")
        return Settings()

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Unable to read {path}: {e}. Using defaults.")
        return Settings()

    if not isinstance(data, dict):
        logger.warning(f"Expected a mapping in {path}. Using defaults.")
        return Settings()

    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Invalid settings in {path}: {e}. Using defaults.")
        return Settings()
