"""
Command-line interface for the credential registry.

Usage:
    credreg init ST1ADMIN
    credreg add-issuer ST1ADMIN ST2ISSUER
    credreg store ST2ISSUER abc123 ST3SUBJECT --expires-at 10000
    credreg check abc123 --at 9999
    credreg hash credential.json
"""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, NoReturn

import click
import httpx
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from credential_registry.errors import CredentialRegistryError, RegistryError
from credential_registry.hashing import credential_hash
from credential_registry.height import FixedHeight, HeightProvider, StacksNodeHeight
from credential_registry.models import CredentialRecord, RegistryResult
from credential_registry.registry import CredentialRegistry
from credential_registry.store import JsonFileStateStore


console = Console()

EXIT_OK = 0
EXIT_REJECTED = 1
EXIT_ERROR = 2


@dataclass
class CLIConfig:
    """Options shared by every command."""

    state_path: Path
    height: int | None
    node_url: str | None
    timeout: float
    verify_ssl: bool
    json_output: bool

    def height_provider(self) -> HeightProvider:
        if self.node_url:
            return StacksNodeHeight(
                self.node_url, timeout=self.timeout, verify_ssl=self.verify_ssl
            )
        return FixedHeight(self.height or 0)

    def store(self) -> JsonFileStateStore:
        return JsonFileStateStore(self.state_path)


def fail(cfg: CLIConfig, message: str, code: int = EXIT_ERROR) -> NoReturn:
    """Report an error and exit."""
    if cfg.json_output:
        console.print_json(data={"error": message})
    else:
        console.print(f"[red]Error:[/] {escape(message)}", soft_wrap=True)
    sys.exit(code)


def run(cfg: CLIConfig, action: Callable[[], Any]) -> Any:
    """Run a command body, turning infrastructure failures into exit code 2."""
    try:
        return action()
    except json.JSONDecodeError as e:
        fail(cfg, f"Invalid JSON: {e}")
    except httpx.HTTPError as e:
        fail(cfg, f"HTTP error: {e}")
    except CredentialRegistryError as e:
        fail(cfg, str(e))
    except ValueError as e:
        fail(cfg, f"Invalid document: {e}")
    except OSError as e:
        fail(cfg, f"Cannot read {e.filename or 'input'}: {e.strerror or e}")


def format_record(record: CredentialRecord, status: RegistryResult) -> None:
    """Print a credential record with its current validity."""
    if status.ok:
        status_str = "[bold green]VALID[/]"
        panel_style = "green"
    elif status.error == RegistryError.REVOKED:
        status_str = "[bold red]REVOKED[/]"
        panel_style = "red"
    else:
        status_str = "[bold yellow]EXPIRED[/]"
        panel_style = "yellow"

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="dim")
    table.add_column("Value")

    table.add_row("Status", status_str)
    table.add_row("Hash", record.hash)
    table.add_row("Issuer", record.issuer)
    table.add_row("Subject", record.subject)
    table.add_row("Stored at", str(record.timestamp))
    table.add_row(
        "Expires at", str(record.expires_at) if record.expires_at is not None else "never"
    )

    console.print(Panel(table, title="Credential", border_style=panel_style))


def report(cfg: CLIConfig, result: RegistryResult, success_message: str) -> NoReturn:
    """Print the outcome of a registry operation and exit accordingly."""
    if cfg.json_output:
        output = result.to_dict()
        if result.error is not None:
            output["reason"] = result.error.name
        console.print_json(data=output)
    elif result.ok:
        console.print(f"[green]OK[/] {escape(success_message)}", soft_wrap=True)
    else:
        error = result.error
        console.print(
            f"[red]Rejected:[/] {error.name} ({error.code}): {error.message}",
            soft_wrap=True,
        )

    sys.exit(EXIT_OK if result.ok else EXIT_REJECTED)


def load_document(source: str, timeout: float, verify_ssl: bool = True) -> bytes:
    """Load a credential document from file, URL, or stdin.

    Args:
        source: File path, URL, or "-" for stdin.
        timeout: HTTP request timeout in seconds.
        verify_ssl: Whether to verify SSL certificates.

    Returns:
        The raw document bytes.
    """
    if source == "-":
        return sys.stdin.buffer.read()

    if source.startswith("http://") or source.startswith("https://"):
        with httpx.Client(timeout=timeout, verify=verify_ssl) as client:
            response = client.get(
                source,
                headers={"Accept": "application/vc+ld+json, application/json"},
            )
            response.raise_for_status()
            return response.content

    return Path(source).read_bytes()


@click.group()
@click.option(
    "--state",
    "state_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default="registry.json",
    show_default=True,
    envvar="CREDREG_STATE",
    help="Registry state file",
)
@click.option(
    "--height",
    type=click.IntRange(min=0),
    envvar="CREDREG_HEIGHT",
    help="Current chain height",
)
@click.option(
    "--node-url",
    envvar="CREDREG_NODE_URL",
    help="Stacks node to read the current chain height from",
)
@click.option(
    "--timeout",
    type=float,
    default=30.0,
    help="HTTP request timeout in seconds",
)
@click.option(
    "--no-ssl-verify",
    is_flag=True,
    help="Disable SSL certificate verification",
)
@click.option(
    "--json-output",
    is_flag=True,
    help="Output results as JSON",
)
@click.option(
    "-v",
    "--verbose",
    is_flag=True,
    help="Log registry activity to stderr",
)
@click.version_option(package_name="credential-registry")
@click.pass_context
def main(
    ctx: click.Context,
    state_path: Path,
    height: int | None,
    node_url: str | None,
    timeout: float,
    no_ssl_verify: bool,
    json_output: bool,
    verbose: bool,
) -> None:
    """Anchor and check credential hashes.

    The current chain height comes from --height, or from a Stacks node
    given with --node-url. Without either it is 0.
    """
    if height is not None and node_url:
        raise click.UsageError("--height and --node-url are mutually exclusive")

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        )

    ctx.obj = CLIConfig(
        state_path=state_path,
        height=height,
        node_url=node_url,
        timeout=timeout,
        verify_ssl=not no_ssl_verify,
        json_output=json_output,
    )


def open_registry(cfg: CLIConfig) -> CredentialRegistry:
    return CredentialRegistry.open(cfg.store(), height_provider=cfg.height_provider())


@main.command()
@click.argument("admin")
@click.option("--force", is_flag=True, help="Overwrite an existing state file")
@click.pass_obj
def init(cfg: CLIConfig, admin: str, force: bool) -> None:
    """Create an empty registry administered by ADMIN."""
    store = cfg.store()
    if store.exists() and not force:
        fail(cfg, f"State file {cfg.state_path} already exists (use --force)")

    registry = CredentialRegistry(admin, store=store)
    run(cfg, registry.save)
    report(cfg, RegistryResult.success(True), f"Registry created at {cfg.state_path}")


@main.command("add-issuer")
@click.argument("caller")
@click.argument("issuer")
@click.pass_obj
def add_issuer(cfg: CLIConfig, caller: str, issuer: str) -> None:
    """Whitelist ISSUER (CALLER must be the admin)."""
    result = run(cfg, lambda: open_registry(cfg).add_issuer(caller, issuer))
    report(cfg, result, f"{issuer} whitelisted")


@main.command("remove-issuer")
@click.argument("caller")
@click.argument("issuer")
@click.pass_obj
def remove_issuer(cfg: CLIConfig, caller: str, issuer: str) -> None:
    """Remove ISSUER from the whitelist (CALLER must be the admin)."""
    result = run(cfg, lambda: open_registry(cfg).remove_issuer(caller, issuer))
    report(cfg, result, f"{issuer} removed from whitelist")


@main.command("transfer-admin")
@click.argument("caller")
@click.argument("new_admin")
@click.pass_obj
def transfer_admin(cfg: CLIConfig, caller: str, new_admin: str) -> None:
    """Make NEW_ADMIN the registry admin (CALLER must be the admin)."""
    result = run(cfg, lambda: open_registry(cfg).transfer_admin(caller, new_admin))
    report(cfg, result, f"{new_admin} is now admin")


@main.command()
@click.argument("caller")
@click.argument("hash")
@click.argument("subject")
@click.option(
    "--expires-at",
    type=click.IntRange(min=0),
    help="Last chain height at which the credential is valid",
)
@click.pass_obj
def store(
    cfg: CLIConfig, caller: str, hash: str, subject: str, expires_at: int | None
) -> None:
    """Anchor credential HASH for SUBJECT (CALLER must be a whitelisted issuer)."""
    result = run(
        cfg,
        lambda: open_registry(cfg).store_credential(caller, hash, subject, expires_at),
    )
    report(cfg, result, f"{hash} stored")


@main.command()
@click.argument("caller")
@click.argument("hash")
@click.pass_obj
def revoke(cfg: CLIConfig, caller: str, hash: str) -> None:
    """Revoke credential HASH (CALLER must be its issuer)."""
    result = run(cfg, lambda: open_registry(cfg).revoke_credential(caller, hash))
    report(cfg, result, f"{hash} revoked")


@main.command()
@click.argument("hash")
@click.option(
    "--at",
    "at_height",
    type=click.IntRange(min=0),
    help="Check validity at this height instead of the current one",
)
@click.pass_obj
def check(cfg: CLIConfig, hash: str, at_height: int | None) -> None:
    """Check whether credential HASH is valid."""
    result = run(cfg, lambda: open_registry(cfg).is_valid(hash, at_height))
    report(cfg, result, f"{hash} is valid")


@main.command()
@click.argument("hash")
@click.pass_obj
def show(cfg: CLIConfig, hash: str) -> None:
    """Show the record stored for credential HASH."""

    def lookup() -> tuple[RegistryResult, RegistryResult]:
        registry = open_registry(cfg)
        result = registry.get_credential(hash)
        if not result.ok:
            return result, result
        return result, registry.is_valid(hash)

    result, status = run(cfg, lookup)

    if not result.ok:
        report(cfg, result, "")

    if cfg.json_output:
        console.print_json(data={
            "value": result.value.to_dict(),
            "status": "VALID" if status.ok else status.error.name,
        })
    else:
        format_record(result.value, status)
    sys.exit(EXIT_OK)


@main.command("hash")
@click.argument("source")
@click.option("--raw", is_flag=True, help="Hash the bytes as-is instead of canonical JSON")
@click.pass_obj
def hash_command(cfg: CLIConfig, source: str, raw: bool) -> None:
    """Print the registry hash of a credential document.

    SOURCE can be a file path, a URL, or "-" to read from stdin.
    """

    def compute() -> str:
        content = load_document(source, cfg.timeout, cfg.verify_ssl)
        if raw:
            return credential_hash(content)
        document = json.loads(content)
        if not isinstance(document, dict):
            fail(cfg, "Credential document must be a JSON object")
        return credential_hash(document)

    digest = run(cfg, compute)

    if cfg.json_output:
        console.print_json(data={"hash": digest})
    else:
        click.echo(digest)


if __name__ == "__main__":
    main()
