"""Configuration namespace for storyforge."""

from __future__ import annotations

from .app import AppConfig
from .base import BaseConfig, load_config
from .generation import GenerationConfig
from .llm import LLMConfig
from .utils import mask_secret, resolve_env_reference
from .web import WebAuthConfig, WebConfig
from .workflow import PreferenceWeightsConfig, WorkflowConfig

__all__ = [
    "AppConfig",
    "BaseConfig",
    "GenerationConfig",
    "LLMConfig",
    "PreferenceWeightsConfig",
    "WebAuthConfig",
    "WebConfig",
    "WorkflowConfig",
    "load_config",
    "mask_secret",
    "resolve_env_reference",
]
