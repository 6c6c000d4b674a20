"""
Configuration management for the EDIFACT audit engine
"""

import os
from pathlib import Path
from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field
import json
from loguru import logger

from .models import MatchingStrategy


ENV_PREFIX = "EDIFACT_AUDIT_"


class AuditConfig(BaseModel):
    """Configuration model for the audit engine"""

    # Matching settings
    matching_strategy: MatchingStrategy = Field(default=MatchingStrategy.PNR_AND_NAME,
                                                description="Passenger identity scheme")
    target_flight: Optional[str] = Field(default=None, description="Permissive flight filter, e.g. EK0160")

    # Validation settings
    strict_validation: bool = Field(default=False, description="Treat UNB/UNZ reference mismatches as errors")

    # Output settings
    verbosity: str = Field(default="SUMMARY", description="SUMMARY, DETAILED or DEBUG")

    # Logging settings
    enable_logging: bool = Field(default=True, description="Install the console log sink")
    log_level: str = Field(default="INFO", description="Logging level")

    # Segment codes
    passenger_bgm_code: str = Field(default="745", description="BGM document code for passenger lists")
    crew_bgm_code: str = Field(default="250", description="BGM document code for crew lists")
    loc_departure_code: str = Field(default="125", description="LOC qualifier for the departure port")
    loc_arrival_code: str = Field(default="87", description="LOC qualifier for the arrival port")
    dtm_departure_code: str = Field(default="189", description="DTM qualifier for departure")
    dtm_arrival_code: str = Field(default="232", description="DTM qualifier for arrival")
    dtm_birth_code: str = Field(default="329", description="DTM qualifier for date of birth")

    # Log scanning settings
    log_file_patterns: List[str] = Field(default_factory=lambda: ["*.log*", "*.txt", "*.edi", "*.edifact"],
                                         description="Glob patterns for log files in a directory")
    input_markers: List[str] = Field(default_factory=lambda: [
        "Request", "INPUT", "received", "PNRGOV_PNR_PUSH", "MessageMHPNRGOV", "$STX$",
    ], description="Log markers of inbound handlers and queues")
    output_markers: List[str] = Field(default_factory=lambda: [
        "Forward.BUSINESS_RULES_PROCESSOR", "TO.NO.PNR.OUT", "MQ Message sent", "OUTPUT", "sent",
    ], description="Log markers of outbound handlers and queues")
    thematic_markers: List[str] = Field(default_factory=lambda: ["PNRGOV", "PAXLST"],
                                        description="Markers that make a missed block worth a warning")
    una_search_lines: int = Field(default=8, description="Lines searched for a UNA header")


class ConfigManager:
    """Configuration manager for the audit engine"""

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize configuration manager

        Args:
            config_file: Path to configuration file
        """
        self.config_file = config_file or "edifact_audit_config.json"
        self._config = None
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from file, then overlay environment variables"""
        config_data: Dict[str, Any] = {}
        try:
            if Path(self.config_file).exists():
                with open(self.config_file, 'r', encoding='utf-8') as f:
                    config_data = json.load(f)
            config_data.update(self.get_environment_config())
            self._config = AuditConfig(**config_data)
        except Exception as e:
            logger.warning(f"Failed to load configuration: {e}")
            self._config = AuditConfig()

    def get_config(self) -> AuditConfig:
        """Get current configuration"""
        return self._config

    def update_config(self, **kwargs) -> None:
        """Update configuration with new values"""
        if self._config:
            data = self._config.dict()
            data.update({k: v for k, v in kwargs.items() if k in data})
            self._config = AuditConfig(**data)

    def save_config(self) -> None:
        """Save current configuration to file"""
        try:
            with open(self.config_file, 'w', encoding='utf-8') as f:
                json.dump(self._config.dict(), f, indent=2)
        except Exception as e:
            logger.warning(f"Failed to save configuration: {e}")

    def reset_to_defaults(self) -> None:
        """Reset configuration to defaults"""
        self._config = AuditConfig()

    def validate_config(self) -> Dict[str, Any]:
        """Validate current configuration"""
        validation_results = {
            'valid': True,
            'warnings': [],
            'errors': []
        }

        valid_log_levels = ['TRACE', 'DEBUG', 'INFO', 'SUCCESS', 'WARNING', 'ERROR', 'CRITICAL']
        if self._config.log_level.upper() not in valid_log_levels:
            validation_results['errors'].append(f"Invalid log level: {self._config.log_level}")
            validation_results['valid'] = False

        if self._config.verbosity.upper() not in ('SUMMARY', 'DETAILED', 'DEBUG'):
            validation_results['errors'].append(f"Invalid verbosity: {self._config.verbosity}")
            validation_results['valid'] = False

        if self._config.una_search_lines <= 0:
            validation_results['errors'].append("una_search_lines must be positive")
            validation_results['valid'] = False

        if not self._config.log_file_patterns:
            validation_results['warnings'].append("No log file patterns configured; directories will yield no files")

        if self._config.target_flight is not None and len(self._config.target_flight.strip()) < 3:
            validation_results['warnings'].append(
                f"Short target flight '{self._config.target_flight}' may match unrelated flights")

        return validation_results

    def get_environment_config(self) -> Dict[str, Any]:
        """Get configuration from environment variables"""
        env_config: Dict[str, Any] = {}

        for field_name in AuditConfig.__fields__:
            env_value = os.getenv(f"{ENV_PREFIX}{field_name.upper()}")
            if env_value is None:
                continue
            if field_name in ('log_file_patterns', 'input_markers', 'output_markers', 'thematic_markers'):
                env_config[field_name] = [v.strip() for v in env_value.split(',') if v.strip()]
            else:
                env_config[field_name] = env_value

        return env_config


def load_config(config_file: Optional[str] = None) -> AuditConfig:
    """Load a configuration from a JSON file and the environment"""
    return ConfigManager(config_file).get_config()
