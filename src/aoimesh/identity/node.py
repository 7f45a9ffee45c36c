# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Tailnet node and daemon status models.

Both models accept the keys emitted by the local daemon
(``ID``, ``HostName``, ``TailscaleIPs`` ...) as well as their own
snake_case field names, so they can be built from raw JSON or in code.
"""

from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class NodeInfo(BaseModel):
    """A peer's network-level identity as reported by the identity daemon."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(default="", validation_alias=AliasChoices("id", "ID"))
    name: str = Field(default="", validation_alias=AliasChoices("name", "Name", "DNSName"))
    hostname: str = Field(default="", validation_alias=AliasChoices("hostname", "HostName"))
    ips: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("ips", "IPs", "TailscaleIPs"),
    )
    online: bool = Field(default=False, validation_alias=AliasChoices("online", "Online"))
    tags: list[str] = Field(default_factory=list, validation_alias=AliasChoices("tags", "Tags"))
    exit_node: bool = Field(
        default=False, validation_alias=AliasChoices("exit_node", "exitNode", "ExitNode")
    )
    os: str = Field(default="", validation_alias=AliasChoices("os", "OS"))
    tailnet_id: str = Field(
        default="", validation_alias=AliasChoices("tailnet_id", "tailnetId", "TailnetID")
    )
    user_id: str = Field(
        default="", validation_alias=AliasChoices("user_id", "userId", "UserID")
    )
    created: str = Field(default="", validation_alias=AliasChoices("created", "Created"))
    last_seen: str = Field(
        default="", validation_alias=AliasChoices("last_seen", "lastSeen", "LastSeen")
    )

    @field_validator("ips", "tags", mode="before")
    @classmethod
    def _null_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("id", "user_id", "tailnet_id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> Any:
        # the daemon reports numeric user IDs
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags


class Status(BaseModel):
    """Snapshot of the local identity daemon."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    backend_state: str = Field(
        default="", validation_alias=AliasChoices("backend_state", "BackendState")
    )
    self_node: Optional[NodeInfo] = Field(
        default=None, validation_alias=AliasChoices("self_node", "Self")
    )
    peer: dict[str, NodeInfo] = Field(
        default_factory=dict, validation_alias=AliasChoices("peer", "Peer")
    )
    tailscale_ips: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("tailscale_ips", "TailscaleIPs")
    )
    health: list[str] = Field(default_factory=list, validation_alias=AliasChoices("health", "Health"))

    @field_validator("peer", mode="before")
    @classmethod
    def _null_peer(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("tailscale_ips", "health", mode="before")
    @classmethod
    def _null_list(cls, v: Any) -> Any:
        return [] if v is None else v
