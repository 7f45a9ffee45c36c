# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Tailnet Integration Configuration

Loaded from YAML or JSON with snake_case keys::

    enabled: true
    require_auth: true
    allowed_tags: ["tag:aoi-agent"]
    fallback_mode: strict
    tag_mappings:
      - tag: "tag:aoi-reader"
        resources: ["agents/*"]
        permission: read
"""

import json
from pathlib import Path
from typing import Any, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

from aoimesh.auth.authenticator import AuthConfig
from aoimesh.constants import STATUS_CACHE_TTL_SECONDS
from aoimesh.governance.permissions import (
    PermissionLevel,
    TagPermissionMapping,
    default_tag_mappings,
)


class TailscaleConfig(BaseModel):
    """Configuration for the tailnet authentication and ACL integration."""

    enabled: bool = False
    require_auth: bool = False
    allowed_tags: list[str] = Field(default_factory=lambda: ["tag:aoi-agent"])
    fallback_mode: Literal["development", "strict"] = "development"
    auto_register_agents: bool = True
    bind_to_tailscale: bool = False
    socket_path: Optional[str] = None
    cache_ttl_seconds: float = Field(default=STATUS_CACHE_TTL_SECONDS, ge=0)
    tag_mappings: list[TagPermissionMapping] = Field(default_factory=list)
    default_permission: PermissionLevel = PermissionLevel.NONE

    @field_validator("default_permission", mode="before")
    @classmethod
    def _parse_default_permission(cls, v: Any) -> Any:
        if isinstance(v, str):
            return PermissionLevel.parse(v)
        return v

    @field_validator("allowed_tags", "tag_mappings", mode="before")
    @classmethod
    def _null_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    def to_auth_config(self) -> AuthConfig:
        return AuthConfig(
            require_auth=self.require_auth,
            allowed_tags=list(self.allowed_tags),
            fallback_mode=self.fallback_mode,
            auto_register_agents=self.auto_register_agents,
        )

    def effective_tag_mappings(self) -> list[TagPermissionMapping]:
        """Configured mappings, or the built-in defaults when none are set."""
        if self.tag_mappings:
            return [m.model_copy(deep=True) for m in self.tag_mappings]
        return default_tag_mappings()

    @classmethod
    def from_yaml(cls, yaml_content: str) -> "TailscaleConfig":
        data = yaml.safe_load(yaml_content) or {}
        return cls.model_validate(_unwrap(data))

    @classmethod
    def from_json(cls, json_content: str) -> "TailscaleConfig":
        data = json.loads(json_content) or {}
        return cls.model_validate(_unwrap(data))

    @classmethod
    def load(cls, path: Union[str, Path]) -> "TailscaleConfig":
        """Load a config file, choosing the parser by extension."""
        path = Path(path)
        content = path.read_text(encoding="utf-8")
        if path.suffix.lower() == ".json":
            return cls.from_json(content)
        return cls.from_yaml(content)

    def to_yaml(self) -> str:
        data = self.model_dump(mode="json", exclude_none=True)
        data["default_permission"] = str(self.default_permission)
        data["tag_mappings"] = [
            {"tag": m.tag, "resources": list(m.resources), "permission": str(m.permission)}
            for m in self.tag_mappings
        ]
        return yaml.dump(data, default_flow_style=False, sort_keys=False)


def _unwrap(data: Any) -> Any:
    # accept either the bare section or a full agent config with a "tailscale" key
    if isinstance(data, dict) and isinstance(data.get("tailscale"), dict):
        return data["tailscale"]
    return data
