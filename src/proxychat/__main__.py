"""CLI entrypoint for proxychat."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence
from datetime import datetime
from importlib import metadata
import os
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from .admin import KEY_STATUSES, Restrictions, StaffAdminClient, UserKeyInfo
from .app import ProxyChatApp
from .catalog import Catalog
from .config import ensure_config_dir, load_config
from .exceptions import ServiceError
from .service import ChatServiceClient

STAFF_KEY_ENV = "PROXYCHAT_STAFF_KEY"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="proxychat",
        description="proxychat - Terminal chat client for a hosted model proxy",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a config.toml (default: ~/.config/proxychat/config.toml)",
    )
    subparsers = parser.add_subparsers(dest="command")

    admin = subparsers.add_parser("admin", help="Staff key and restriction management")
    admin.add_argument(
        "--staff-key",
        default=None,
        help=f"Staff key (default: ${STAFF_KEY_ENV})",
    )
    actions = admin.add_subparsers(dest="action", required=True)
    actions.add_parser("keys", help="List user access keys")
    actions.add_parser("restrictions", help="Show restricted models and personas")
    add_key = actions.add_parser("add-key", help="Create a user access key")
    add_key.add_argument("--username", default=None)
    delete_key = actions.add_parser("delete-key", help="Delete a user access key")
    delete_key.add_argument("key")
    set_status = actions.add_parser("set-status", help="Activate or deactivate a key")
    set_status.add_argument("key")
    set_status.add_argument("status", choices=KEY_STATUSES)
    rename = actions.add_parser("rename", help="Change or clear a key's username")
    rename.add_argument("key")
    rename.add_argument("username", nargs="?", default=None)
    toggle_model = actions.add_parser(
        "toggle-model", help="Flip whether a model needs an access key"
    )
    toggle_model.add_argument("model")
    toggle_persona = actions.add_parser(
        "toggle-persona", help="Flip whether a persona needs an access key"
    )
    toggle_persona.add_argument("persona")
    return parser


def _format_created(value: str | None) -> str:
    if not value:
        return "-"
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        return value


def render_keys(console: Console, keys: list[UserKeyInfo]) -> None:
    if not keys:
        console.print("No keys found.")
        return
    table = Table(title="User access keys")
    table.add_column("Key", overflow="fold")
    table.add_column("Username")
    table.add_column("Status")
    table.add_column("Created")
    for info in keys:
        status_style = "green" if info.status == "active" else "red"
        table.add_row(
            info.key,
            info.username or "(none)",
            f"[{status_style}]{info.status}[/{status_style}]",
            _format_created(info.created_at),
        )
    console.print(table)


def render_restrictions(
    console: Console, restrictions: Restrictions, catalog: Catalog
) -> None:
    models = Table(title="Models")
    models.add_column("Value")
    models.add_column("Label")
    models.add_column("Access")
    for model in catalog.models:
        restricted = model.value in restrictions.models
        models.add_row(model.value, model.label, "restricted" if restricted else "public")
    console.print(models)

    personas = Table(title="Personas")
    personas.add_column("Value")
    personas.add_column("Label")
    personas.add_column("Access")
    for persona in catalog.personas:
        restricted = persona.value in restrictions.personas
        personas.add_row(
            persona.value, persona.display, "restricted" if restricted else "public"
        )
    console.print(personas)


async def _run_admin(
    args: argparse.Namespace,
    config: dict[str, Any],
    console: Console,
    client: ChatServiceClient | None = None,
) -> None:
    staff_key = args.staff_key or os.environ.get(STAFF_KEY_ENV, "")
    service_cfg = config["service"]
    owned = client is None
    service = client or ChatServiceClient(
        str(service_cfg["endpoint"]),
        timeout_seconds=float(service_cfg["timeout_seconds"]),
    )
    try:
        admin = StaffAdminClient(service, staff_key)
        if args.action == "keys":
            render_keys(console, await admin.list_keys())
        elif args.action == "restrictions":
            render_restrictions(
                console, await admin.get_restrictions(), Catalog.from_config(config)
            )
        elif args.action == "add-key":
            console.print(await admin.add_key(args.username))
        elif args.action == "delete-key":
            console.print(await admin.delete_key(args.key))
        elif args.action == "set-status":
            console.print(await admin.update_key_status(args.key, args.status))
        elif args.action == "rename":
            console.print(await admin.edit_username(args.key, args.username))
        elif args.action == "toggle-model":
            console.print(await admin.toggle_model_restriction(args.model))
        elif args.action == "toggle-persona":
            console.print(await admin.toggle_persona_restriction(args.persona))
    finally:
        if owned:
            await service.aclose()


def main(argv: Sequence[str] | None = None) -> None:
    """Ensure configuration exists, handle CLI flags, and run the TUI or admin tools."""

    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.version:
        try:
            version = metadata.version("proxychat")
        except metadata.PackageNotFoundError:
            version = "0.0.0"
        print(f"proxychat {version}")
        return

    ensure_config_dir()
    config = load_config(args.config)

    if args.command == "admin":
        console = Console()
        try:
            asyncio.run(_run_admin(args, config, console))
        except ServiceError as exc:
            console.print(f"[red]Error:[/red] {exc}")
            raise SystemExit(1) from exc
        return

    app = ProxyChatApp(config)
    app.run()


if __name__ == "__main__":
    main()
