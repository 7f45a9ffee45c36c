# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""
aoimesh CLI

Commands for inspecting the tailnet identity layer:
- status: Show daemon state, the local node and its peers
- mappings: Show the effective tag -> permission mappings
- check: Evaluate a tag set against a resource/action
"""

import json
import logging
import sys
from typing import Optional

import click
import yaml
from rich import box
from rich.console import Console
from rich.table import Table

from aoimesh.config import TailscaleConfig
from aoimesh.exceptions import AoiMeshError
from aoimesh.governance.tag_acl import TagACL
from aoimesh.identity.client import LocalClient
from aoimesh.identity.fake import FakeClient

console = Console()


def _output_json(data: object) -> None:
    """Print data as JSON to stdout."""
    click.echo(json.dumps(data, indent=2, default=str))


def _output_yaml(data: object) -> None:
    """Print data as YAML to stdout."""
    click.echo(yaml.dump(data, default_flow_style=False, sort_keys=False))


def _load_config(path: Optional[str]) -> TailscaleConfig:
    if path is None:
        return TailscaleConfig()
    return TailscaleConfig.load(path)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def app(verbose: bool):
    """Inspect tailnet identities and tag permissions."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
@click.option("--socket", "socket_path", default=None, help="Path to the tailscaled socket.")
@click.option("--json", "json_flag", is_flag=True, help="Output as JSON.")
def status(socket_path: Optional[str], json_flag: bool):
    """Show daemon state, the local node and its peers."""
    with LocalClient(socket_path=socket_path) as client:
        try:
            snapshot = client.get_status()
        except AoiMeshError as exc:
            console.print(f"[bold red]Tailscale unavailable:[/bold red] {exc}")
            sys.exit(1)

    if json_flag:
        _output_json(snapshot.model_dump(mode="json"))
        return

    console.print(f"\n[bold blue]Backend state:[/bold blue] {snapshot.backend_state}")
    if snapshot.self_node:
        console.print(
            f"[bold blue]Self:[/bold blue] {snapshot.self_node.name} "
            f"({', '.join(snapshot.self_node.ips)})"
        )

    table = Table(box=box.ROUNDED)
    table.add_column("Node ID")
    table.add_column("Name")
    table.add_column("IPs")
    table.add_column("Online")
    table.add_column("Tags")
    for node in snapshot.peer.values():
        table.add_row(
            node.id,
            node.name or node.hostname,
            ", ".join(node.ips),
            "[green]yes[/green]" if node.online else "[red]no[/red]",
            ", ".join(node.tags),
        )
    console.print(table)
    for message in snapshot.health:
        console.print(f"[yellow]health:[/yellow] {message}")


@app.command()
@click.option("--config", "config_path", type=click.Path(exists=True), default=None)
@click.option(
    "--format", "fmt",
    type=click.Choice(["table", "json", "yaml"]),
    default="table",
    help="Output format (table, json, or yaml).",
)
def mappings(config_path: Optional[str], fmt: str):
    """Show the effective tag -> permission mappings."""
    cfg = _load_config(config_path)
    data = [
        {"tag": m.tag, "resources": list(m.resources), "permission": str(m.permission)}
        for m in cfg.effective_tag_mappings()
    ]

    if fmt == "json":
        _output_json(data)
        return
    if fmt == "yaml":
        _output_yaml(data)
        return

    table = Table(box=box.ROUNDED)
    table.add_column("Tag")
    table.add_column("Resources")
    table.add_column("Permission")
    for row in data:
        table.add_row(row["tag"], ", ".join(row["resources"]), row["permission"])
    console.print(table)


@app.command()
@click.argument("tags", nargs=-1, required=True)
@click.option("--resource", "-r", required=True, help="Target resource, e.g. agents/a1.")
@click.option("--action", "-a", required=True, help="read, write, execute or admin.")
@click.option("--config", "config_path", type=click.Path(exists=True), default=None)
@click.option("--json", "json_flag", is_flag=True, help="Output as JSON.")
def check(tags: tuple, resource: str, action: str, config_path: Optional[str], json_flag: bool):
    """Evaluate TAGS against a resource/action using the configured mappings."""
    cfg = _load_config(config_path)
    acl = TagACL(
        FakeClient(),
        tag_mappings=cfg.effective_tag_mappings(),
        default_permission=cfg.default_permission,
    )
    result = acl.check_permission_for_tags(list(tags), resource, action)

    if json_flag:
        _output_json(result.model_dump())
    elif result.allowed:
        console.print(f"[green]ALLOW[/green] {action} on {resource}: {result.reason}")
    else:
        console.print(f"[red]DENY[/red] {action} on {resource}: {result.reason}")

    if not result.allowed:
        sys.exit(2)


if __name__ == "__main__":
    app()
