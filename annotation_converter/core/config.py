#!/usr/bin/env python3

"""
Configuration management for the annotation converter.

Centralized configuration with support for file-based configuration
(JSON or YAML) and environment variable overrides.
"""

import os
import json
from dataclasses import dataclass, asdict, field
from typing import Optional, Dict, Any, List

import yaml

from .exceptions import ConfigurationError

MALFORMED_POLICIES = ('skip', 'collect', 'abort')
CONFLICT_POLICIES = ('warn', 'abort')
UNSUPPORTED_POLICIES = ('warn', 'abort')
EMPTY_TRANSCRIPT_POLICIES = ('error', 'warn')
ATTRIBUTE_DIALECTS = ('inferred', 'gff3', 'gtf')


def _parse_bool(value: str) -> bool:
    return value.lower() in ('true', '1', 'yes')


def _parse_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(',') if item.strip()]


@dataclass
class ConversionConfig:
    """Centralized configuration for reading, validating and writing annotations."""

    # Error policies
    on_malformed_record: str = 'collect'
    on_structural_conflict: str = 'abort'
    on_unsupported_feature: str = 'warn'
    empty_transcript_policy: str = 'error'

    # Reader options
    attribute_dialect: str = 'inferred'
    allow_out_of_order_parents: bool = True
    gene_types: List[str] = field(default_factory=lambda: ['gene'])
    transcript_types: List[str] = field(default_factory=lambda: ['mRNA', 'transcript'])
    gene_id_attribute: str = 'gene_id'
    transcript_id_attribute: str = 'transcript_id'
    seq_name_prefix: str = ''
    seq_name_lstrip: str = ''

    # Writer options
    default_source: str = '.'

    # Monitoring
    enable_memory_monitoring: bool = True
    memory_limit_mb: int = 4096
    memory_check_interval: int = 100000  # records
    debug_mode: bool = False

    @classmethod
    def from_file(cls, config_path: str) -> 'ConversionConfig':
        """Load configuration from file (JSON or YAML)."""
        if not os.path.exists(config_path):
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path, 'r') as f:
                if config_path.lower().endswith(('.yaml', '.yml')):
                    config_data = yaml.safe_load(f) or {}
                else:
                    config_data = json.load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Invalid configuration file format: {e}")
        except OSError as e:
            raise ConfigurationError(f"Error loading configuration: {e}")

        if not isinstance(config_data, dict):
            raise ConfigurationError(f"Configuration file must contain a mapping: {config_path}")
        return cls.from_dict(config_data)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'ConversionConfig':
        """Create configuration from dictionary."""
        # Filter out unknown keys
        known_keys = set(cls.__dataclass_fields__.keys())
        filtered_dict = {k: v for k, v in config_dict.items() if k in known_keys}

        try:
            return cls(**filtered_dict)
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration parameters: {e}")

    @classmethod
    def from_env(cls) -> 'ConversionConfig':
        """Load configuration from environment variables."""
        config = cls()

        # Map environment variables to config fields
        env_mappings = {
            'ANNOCONV_ON_MALFORMED_RECORD': ('on_malformed_record', str),
            'ANNOCONV_ON_STRUCTURAL_CONFLICT': ('on_structural_conflict', str),
            'ANNOCONV_ON_UNSUPPORTED_FEATURE': ('on_unsupported_feature', str),
            'ANNOCONV_EMPTY_TRANSCRIPT_POLICY': ('empty_transcript_policy', str),
            'ANNOCONV_ATTRIBUTE_DIALECT': ('attribute_dialect', str),
            'ANNOCONV_ALLOW_OUT_OF_ORDER_PARENTS': ('allow_out_of_order_parents', _parse_bool),
            'ANNOCONV_TRANSCRIPT_TYPES': ('transcript_types', _parse_list),
            'ANNOCONV_SEQ_NAME_PREFIX': ('seq_name_prefix', str),
            'ANNOCONV_SEQ_NAME_LSTRIP': ('seq_name_lstrip', str),
            'ANNOCONV_MEMORY_LIMIT_MB': ('memory_limit_mb', int),
            'ANNOCONV_DEBUG_MODE': ('debug_mode', _parse_bool),
        }

        for env_var, (field_name, converter) in env_mappings.items():
            env_value = os.getenv(env_var)
            if env_value:
                try:
                    setattr(config, field_name, converter(env_value))
                except (ValueError, TypeError) as e:
                    raise ConfigurationError(f"Invalid environment variable {env_var}: {e}")

        config.validate()
        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    def save_to_file(self, config_path: str) -> None:
        """Save configuration to file."""
        config_dict = self.to_dict()

        try:
            with open(config_path, 'w') as f:
                if config_path.lower().endswith(('.yaml', '.yml')):
                    yaml.safe_dump(config_dict, f, default_flow_style=False)
                else:
                    json.dump(config_dict, f, indent=2)
        except OSError as e:
            raise ConfigurationError(f"Error saving configuration: {e}")

    def validate(self) -> None:
        """Validate configuration parameters."""
        choices = [
            ('on_malformed_record', MALFORMED_POLICIES),
            ('on_structural_conflict', CONFLICT_POLICIES),
            ('on_unsupported_feature', UNSUPPORTED_POLICIES),
            ('empty_transcript_policy', EMPTY_TRANSCRIPT_POLICIES),
            ('attribute_dialect', ATTRIBUTE_DIALECTS),
        ]
        for name, allowed in choices:
            value = getattr(self, name)
            if value not in allowed:
                raise ConfigurationError(
                    f"{name} must be one of {', '.join(allowed)} (got {value!r})")

        if not self.gene_types:
            raise ConfigurationError("gene_types must not be empty")
        if not self.transcript_types:
            raise ConfigurationError("transcript_types must not be empty")
        if set(self.gene_types) & set(self.transcript_types):
            raise ConfigurationError("gene_types and transcript_types must not overlap")
        if not self.gene_id_attribute or not self.transcript_id_attribute:
            raise ConfigurationError("ID attribute names must not be empty")

        if self.memory_limit_mb < 100:
            raise ConfigurationError("memory_limit_mb must be >= 100")
        if self.memory_check_interval < 1:
            raise ConfigurationError("memory_check_interval must be >= 1")

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.validate()


def load_config(config_path: Optional[str] = None,
                use_env: bool = True) -> ConversionConfig:
    """
    Load configuration with priority: file > environment > defaults.

    Args:
        config_path: Path to configuration file (optional)
        use_env: Whether to load environment variables

    Returns:
        ConversionConfig: Loaded configuration
    """
    # Start with defaults
    config = ConversionConfig()

    # Override with environment variables if requested
    if use_env:
        env_config = ConversionConfig.from_env()
        for field_name in ConversionConfig.__dataclass_fields__:
            env_value = getattr(env_config, field_name)
            if env_value != getattr(config, field_name):
                setattr(config, field_name, env_value)

    # Override with file configuration if provided
    if config_path:
        file_config = ConversionConfig.from_file(config_path)
        for field_name in ConversionConfig.__dataclass_fields__:
            setattr(config, field_name, getattr(file_config, field_name))

    config.validate()
    return config
