"""Configuration management for the citations package."""

import os
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional

from pydantic import BaseModel, Field, field_validator

from cite_core.constants import (
    DEFAULT_CONFIG_PATH, DEFAULT_NOTES_DIR, DEFAULT_LOG_LEVEL,
    DEFAULT_EXPORT_FORMAT, DEFAULT_LITERATURE_NOTE_FOLDER,
    DEFAULT_TITLE_TEMPLATE, DEFAULT_CONTENT_TEMPLATE,
    DEFAULT_MARKDOWN_CITATION_TEMPLATE,
    DEFAULT_ALTERNATIVE_MARKDOWN_CITATION_TEMPLATE,
    DEFAULT_STABILITY_THRESHOLD
)

logger = logging.getLogger(__name__)


class CitationsSettings(BaseModel):
    """Citation export and literature note settings."""
    citation_export_path: str = Field(default="", description="Bibliography export file, absolute or relative to notes_dir")
    citation_export_format: str = Field(default=DEFAULT_EXPORT_FORMAT, description="Export format: 'biblatex' or 'csl-json'")
    literature_note_folder: str = Field(default=DEFAULT_LITERATURE_NOTE_FOLDER,
                                        description="Folder (relative to notes_dir) holding literature notes")
    literature_note_title_template: str = Field(default=DEFAULT_TITLE_TEMPLATE,
                                                description="Template for literature note titles")
    literature_note_content_template: str = Field(default=DEFAULT_CONTENT_TEMPLATE,
                                                  description="Template for new literature note content")
    markdown_citation_template: str = Field(default=DEFAULT_MARKDOWN_CITATION_TEMPLATE,
                                            description="Template for inline Markdown citations")
    alternative_markdown_citation_template: str = Field(default=DEFAULT_ALTERNATIVE_MARKDOWN_CITATION_TEMPLATE,
                                                        description="Template for alternative inline citations")
    use_markdown_links: bool = Field(default=False, description="Insert [title](path) links instead of [[title]]")
    watch_stability_threshold: float = Field(default=DEFAULT_STABILITY_THRESHOLD,
                                             description="Seconds without writes before reloading the export")

    @field_validator('citation_export_format')
    @classmethod
    def normalize_format(cls, v: str) -> str:
        """Normalize the export format name. Unknown formats fail at load time."""
        return v.strip().lower()

    @field_validator('watch_stability_threshold')
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        """Validate the debounce threshold."""
        if v < 0:
            logger.warning(f"Invalid watch stability threshold: {v}. Using default: {DEFAULT_STABILITY_THRESHOLD}")
            return DEFAULT_STABILITY_THRESHOLD
        return v


class LoggingConfig(BaseModel):
    """Logging configuration model."""
    level: str = Field(default=DEFAULT_LOG_LEVEL, description="Logging level")
    file: Optional[str] = Field(default=None, description="Log file path")

    @field_validator('level')
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate logging level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            logger.warning(f"Invalid logging level: {v}. Using default: {DEFAULT_LOG_LEVEL}")
            return DEFAULT_LOG_LEVEL
        return v.upper()


class CitationsConfig(BaseModel):
    """Main configuration model."""
    notes_dir: str = Field(default=DEFAULT_NOTES_DIR, description="Path to notes directory")
    citations: CitationsSettings = Field(default_factory=CitationsSettings, description="Citation settings")
    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging configuration")
    socket_path: Optional[str] = Field(default=None, description="Neovim socket used to insert text")

    @field_validator('notes_dir')
    @classmethod
    def resolve_notes_dir(cls, v: str) -> str:
        """Resolve notes directory path."""
        return resolve_path(v)


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from the YAML config file.

    Args:
        config_path: Path to the config file. If None, default is used.

    Returns:
        Dict with configuration values.
    """
    path = str(config_path) if config_path else DEFAULT_CONFIG_PATH
    config: Dict[str, Any] = {}

    try:
        resolved_path = resolve_path(path)
        config_file = Path(resolved_path)
        if config_file.exists():
            with open(config_file, 'r', encoding='utf-8') as f:
                raw_config = yaml.safe_load(f) or {}

            try:
                validated_config = CitationsConfig(**raw_config)
                config = validated_config.model_dump()
                logger.debug(f"Loaded and validated configuration from {resolved_path}")
            except Exception as validation_error:
                logger.error(f"Configuration validation error: {validation_error}")
                logger.warning("Using default configuration with provided values where valid")
                config = raw_config
        else:
            logger.warning(f"Config file '{resolved_path}' not found. Using defaults.")
    except Exception as e:
        logger.error(f"Error loading config file '{path}': {e}")

    return config


def resolve_path(path: Optional[str]) -> Optional[str]:
    """Resolve path with environment variables and user home."""
    if path is None:
        return None
    return os.path.expanduser(os.path.expandvars(path))


def get_notes_dir(config: Dict[str, Any]) -> str:
    """Get notes directory from config or use default."""
    notes_dir = config.get("notes_dir", DEFAULT_NOTES_DIR)
    return resolve_path(notes_dir)


def get_config_value(config: Dict[str, Any], key_path: str, default: Any = None) -> Any:
    """
    Get configuration value using a dot-separated path.

    Args:
        config: Configuration dictionary
        key_path: Dot-separated path (e.g., "section.key")
        default: Default value if path not found

    Returns:
        Configuration value or default if not found
    """
    keys = key_path.split('.')
    current = config

    for key in keys:
        if isinstance(current, dict) and key in current:
            current = current[key]
        else:
            return default

    return current


def get_citations_settings(config: Dict[str, Any]) -> CitationsSettings:
    """
    Build the citation settings from the 'citations' config section.

    Invalid values are logged and replaced by defaults so that a typo in one
    template does not disable the whole plugin.
    """
    section = get_config_value(config, "citations", {})
    if not isinstance(section, dict):
        logger.warning(f"Config section 'citations' is not a mapping: {type(section)}. Using defaults.")
        return CitationsSettings()
    try:
        return CitationsSettings(**section)
    except Exception as e:
        logger.error(f"Invalid citations settings: {e}. Using defaults.")
        return CitationsSettings()
