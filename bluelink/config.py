"""Configuration for link resolution and chat execution.

Settings are plain values threaded through every call; nothing in the core
reads global state. ``BlueLinkSettings`` builds them from scope-aware YAML
files, most specific scope winning:

1. local (.bluelink/settings.local.yaml) - gitignored, machine-specific
2. project (.bluelink/settings.yaml) - committed with the vault
3. global (~/.bluelink/settings.yaml) - user defaults

Example::

    resolution:
      max_depth: 8
      write_intermediate_results: true
    endpoint:
      base_url: http://localhost:11434/v1
      model: llama3.1
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

from bluelink.chat.transcript import DEFAULT_ROLE_HEADER
from bluelink.links.models import LinkSyntax

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant. Respond using Markdown."


class ResolutionConfig(BaseModel):
    """Knobs of the recursive link resolver."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = True  # off: links inline raw file content, no recursion or execution
    max_depth: int = Field(default=5, ge=1, le=20)
    enable_caching: bool = True
    write_intermediate_results: bool = False
    link_syntax: LinkSyntax = LinkSyntax.LINE


class ChatConfig(BaseModel):
    """How chat transcripts are written in the vault."""

    model_config = ConfigDict(extra="ignore")

    role_header: str = DEFAULT_ROLE_HEADER
    system_prompt: str = DEFAULT_SYSTEM_PROMPT


class EndpointConfig(BaseModel):
    """An OpenAI-compatible chat completions endpoint."""

    model_config = ConfigDict(extra="ignore")

    name: str = "OpenAI"
    base_url: str = "https://api.openai.com/v1"
    api_key: str | None = None
    model: str = "gpt-4.1-nano"
    max_tokens: int = Field(default=4096, ge=1)
    timeout: float = Field(default=120.0, gt=0)

    def resolved_api_key(self) -> str | None:
        """Configured key, else ``BLUELINK_API_KEY``, else ``OPENAI_API_KEY``."""
        return self.api_key or os.environ.get("BLUELINK_API_KEY") or os.environ.get("OPENAI_API_KEY")


def deep_merge(parent: dict[str, Any], child: dict[str, Any]) -> dict[str, Any]:
    """Merge ``child`` over ``parent``; nested dicts merge, everything else is replaced."""
    result = parent.copy()
    for key, child_value in child.items():
        parent_value = result.get(key)
        if isinstance(parent_value, dict) and isinstance(child_value, dict):
            result[key] = deep_merge(parent_value, child_value)
        else:
            result[key] = child_value
    return result


@dataclass
class SettingsPaths:
    """Standard paths for settings files."""

    global_settings: Path
    project_settings: Path
    local_settings: Path

    @classmethod
    def default(cls, project_dir: Path | None = None) -> SettingsPaths:
        project_dir = project_dir or Path.cwd()
        return cls(
            global_settings=Path.home() / ".bluelink" / "settings.yaml",
            project_settings=project_dir / ".bluelink" / "settings.yaml",
            local_settings=project_dir / ".bluelink" / "settings.local.yaml",
        )


class BlueLinkSettings:
    """Scope-merged YAML settings.

    Usage:
        settings = BlueLinkSettings(SettingsPaths.default(vault_dir))
        config = settings.resolution_config()
    """

    def __init__(self, paths: SettingsPaths | None = None) -> None:
        self.paths = paths or SettingsPaths.default()

    def get_merged_settings(self) -> dict[str, Any]:
        """Load and merge settings from all scopes (global -> project -> local)."""
        result: dict[str, Any] = {}
        for path in (self.paths.global_settings, self.paths.project_settings, self.paths.local_settings):
            if not path.exists():
                continue
            try:
                with open(path, encoding="utf-8") as f:
                    content = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Skipping unreadable settings file {path}: {e}")
                continue
            if not isinstance(content, dict):
                logger.warning(f"Skipping settings file {path}: top level is not a mapping")
                continue
            result = deep_merge(result, content)
        return result

    def _section(self, name: str) -> dict[str, Any]:
        section = self.get_merged_settings().get(name) or {}
        return section if isinstance(section, dict) else {}

    def resolution_config(self) -> ResolutionConfig:
        return ResolutionConfig.model_validate(self._section("resolution"))

    def chat_config(self) -> ChatConfig:
        return ChatConfig.model_validate(self._section("chat"))

    def endpoint_config(self) -> EndpointConfig:
        return EndpointConfig.model_validate(self._section("endpoint"))
