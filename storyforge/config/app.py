"""Application-level configuration models."""

from __future__ import annotations

from pydantic import Field, model_validator

from storyforge.config.base import BaseConfig
from storyforge.config.generation import GenerationConfig
from storyforge.config.llm import LLMConfig
from storyforge.config.web import WebConfig
from storyforge.config.workflow import WorkflowConfig


class AppConfig(BaseConfig):
    """Top-level runtime configuration for the entire application."""

    logging_level: str = Field("INFO", description="Log level: DEBUG, INFO, WARNING, ERROR")
    generation: GenerationConfig | None = Field(None, description="Book generation configuration")
    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig, description="Pitch voting policy")
    web: WebConfig | None = Field(None, description="HTTP API configuration")
    llms: list[LLMConfig] = Field(default_factory=list, description="Available LLM configurations")

    @model_validator(mode="after")
    def _unique_llm_aliases(self) -> "AppConfig":
        aliases = [llm.alias for llm in self.llms]
        duplicates = sorted({alias for alias in aliases if aliases.count(alias) > 1})
        if duplicates:
            raise ValueError(f"Duplicate LLM aliases: {', '.join(duplicates)}")
        return self

    def resolve_llm(self, alias: str) -> LLMConfig:
        for llm in self.llms:
            if llm.alias == alias:
                return llm
        raise ValueError(f"LLM alias '{alias}' not found in configuration")


__all__ = ["AppConfig"]
