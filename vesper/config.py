from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel

from .constants import DEFAULT_DIARY_TEMPLATE, DEFAULT_PLAN_TEMPLATE


class AIConfig(BaseModel):
    """Configuration for the AI completion model."""

    model: Optional[str] = None
    user_introduction: str = ""
    max_retries: int = 2


class PromptOverrides(BaseModel):
    """Custom prompt templates; ``None`` selects the built-in default."""

    questions: Optional[str] = None
    analyzer: Optional[str] = None
    plan: Optional[str] = None
    report: Optional[str] = None


class DocumentTemplates(BaseModel):
    """Templates used when creating diary and plan documents."""

    diary: str = DEFAULT_DIARY_TEMPLATE
    plan: str = DEFAULT_PLAN_TEMPLATE


class VesperConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    timezone: str = "UTC"
    ai: AIConfig = AIConfig()
    prompts: PromptOverrides = PromptOverrides()
    templates: DocumentTemplates = DocumentTemplates()
    key_value_path: Optional[str] = None
    services_factory: Optional[str] = None
    own_package: Optional[str] = None
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> VesperConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to VESPER_CONFIG env
            variable or 'vesper.yaml' in the current directory.
    """

    config_path = path or os.getenv("VESPER_CONFIG", "vesper.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = VesperConfig(**data)
    else:
        config = VesperConfig()

    env_db_url = os.getenv("VESPER_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_model = os.getenv("VESPER_AI_MODEL")
    if env_model:
        config.ai.model = env_model
    return config
