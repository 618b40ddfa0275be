"""Hostward CLI - Command line interface."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from collections.abc import Awaitable, Callable
from typing import Any

import click
import structlog
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from hostward import __version__
from hostward.core.config import clear_config, flatten_config, get_config, load_config_from_file
from hostward.core.exceptions import HostwardError, format_error_for_user
from hostward.domains.manager import DomainManager
from hostward.domains.storage import Domain, DomainStatus

console = Console()

STATUS_COLORS = {
    DomainStatus.PENDING: "yellow",
    DomainStatus.VALIDATING: "cyan",
    DomainStatus.ACTIVE: "green",
    DomainStatus.FAILED: "red",
}


def _configure_logging(log_level: str) -> None:
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper())
        ),
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
    )


def _apply_file_config(file_config: dict[str, Any]) -> None:
    """Expose file settings as HOSTWARD_* variables; real env vars win."""
    for key, value in file_config.items():
        if value is None:
            continue
        name = key.removeprefix("verification_")
        os.environ.setdefault(f"HOSTWARD_{name.upper()}", str(value))
    clear_config()


def _run(coro_fn: Callable[[DomainManager], Awaitable[None]]) -> None:
    """Run an async command against a configured manager.

    Hostward errors are printed and exit with status 1.
    """

    async def runner() -> None:
        manager = DomainManager.from_config(get_config())
        try:
            await manager.initialize()
            await coro_fn(manager)
        finally:
            await manager.close()

    try:
        asyncio.run(runner())
    except HostwardError as e:
        console.print(f"[red]Error:[/red] {format_error_for_user(e)}")
        sys.exit(1)


def _print_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def _records_table(records: list[dict[str, Any]], title: str) -> Table:
    table = Table(title=title)
    table.add_column("Type", style="cyan")
    table.add_column("Name")
    table.add_column("Value", style="green")
    table.add_column("TTL", justify="right")
    for record in records:
        table.add_row(
            record["type"],
            record["name"],
            str(record.get("value") or record.get("content") or ""),
            str(record.get("ttl", "")),
        )
    return table


def _check(value: bool) -> str:
    return "[green]Valid[/green]" if value else "[red]Invalid[/red]"


@click.group()
@click.option(
    "--config", "-c",
    "config_file",
    type=click.Path(exists=True),
    help="Path to YAML or TOML config file",
)
@click.option(
    "--owner",
    envvar="HOSTWARD_OWNER_ID",
    default="local",
    show_default=True,
    help="Owner id used for domains created from the CLI",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default="warning",
    help="Log level (default: warning, use --verbose for debug)",
)
@click.pass_context
def main(
    ctx: click.Context,
    config_file: str | None,
    owner: str,
    verbose: bool,
    log_level: str,
):
    """Hostward - custom domain verification and provisioning.

    Examples:

        hostward domain add example.com

        hostward domain verify example.com

        hostward diagnose example.com

    All settings can be configured via environment variables with the
    HOSTWARD_ prefix, or a YAML/TOML file passed with --config.
    """
    _configure_logging("debug" if verbose else log_level)

    if config_file:
        try:
            file_config = flatten_config(load_config_from_file(config_file))
        except (FileNotFoundError, ValueError) as e:
            console.print(f"[red]Failed to load config: {e}[/red]")
            sys.exit(1)
        _apply_file_config(file_config)
        console.print(f"Loaded config from {config_file}", style="dim")

    ctx.ensure_object(dict)
    ctx.obj["owner"] = owner


@main.command()
def version():
    """Show version information."""
    console.print(f"[bold]Hostward[/bold] {__version__}")
    console.print(f"[bold]Python:[/bold] {sys.version}")


@main.command("config")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def config_show(json_output: bool):
    """Show current configuration settings."""
    display = get_config().to_display_dict()

    if json_output:
        _print_json(display)
        return

    for section_name, settings in display.items():
        table = Table(title=section_name.title())
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="green")
        for key, value in settings.items():
            table.add_row(key, str(value) if value is not None else "[dim]None[/dim]")
        console.print(table)


@main.group()
def domain():
    """Manage custom domains.

    Examples:

        hostward domain add example.com

        hostward domain verify example.com

        hostward domain list

        hostward domain status example.com

        hostward domain remove example.com

        hostward domain retry
    """


@domain.command("add")
@click.argument("domain_name")
@click.option("--attach/--no-attach", default=True, help="Attach to the hosting site")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
def domain_add(ctx: click.Context, domain_name: str, attach: bool, json_output: bool):
    """Register a custom domain and print the DNS records to publish."""
    owner = ctx.obj["owner"]

    async def command(manager: DomainManager) -> None:
        provisioned = await manager.provision_domain(owner, domain_name, attach=attach)
        if json_output:
            _print_json(provisioned.to_dict())
            return

        record = provisioned.domain
        state = "already registered" if not provisioned.created else "registered"
        console.print(
            Panel(
                f"[green]Domain {state}![/green]\n\n"
                f"[bold]Domain:[/bold] {record.domain_name}\n"
                f"[bold]ID:[/bold] {record.id}\n"
                f"[bold]Status:[/bold] {record.status.value}\n\n"
                f"After configuring DNS, run:\n"
                f"  [cyan]hostward domain verify {record.domain_name}[/cyan]",
                title="Domain Registration",
                border_style="green",
            )
        )
        console.print(
            _records_table(
                [r.to_dict() for r in provisioned.dns_records], "Configure these DNS records"
            )
        )

    _run(command)


@domain.command("verify")
@click.argument("domain_name")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
def domain_verify(ctx: click.Context, domain_name: str, json_output: bool):
    """Run a validation pass for a domain."""
    owner = ctx.obj["owner"]
    exit_code = 0

    async def command(manager: DomainManager) -> None:
        nonlocal exit_code
        record = await manager.find_domain(domain_name, owner)
        if not json_output:
            console.print(
                f"Verifying DNS records for [cyan]{record.domain_name}[/cyan]...", style="yellow"
            )
        outcome = await manager.request_validation(record.id, manual=True)

        if json_output:
            _print_json(outcome.to_dict())
        elif not outcome.ok:
            console.print(f"[red]Error:[/red] {outcome.error}")
        else:
            result = outcome.result
            content = (
                f"[bold]Domain:[/bold] {record.domain_name}\n"
                f"[bold]TXT:[/bold] {_check(result.txt_validated)}\n"
                f"[bold]A:[/bold] {_check(result.a_validated)}\n"
                f"[bold]CNAME:[/bold] {_check(result.cname_validated)} [dim](optional)[/dim]"
            )
            if result.errors:
                content += "\n\n" + "\n".join(f"[red]x[/red] {e}" for e in result.errors)
            if result.notices:
                content += "\n\n" + "\n".join(f"[yellow]![/yellow] {n}" for n in result.notices)
            console.print(
                Panel(
                    content,
                    title="Verification Successful" if outcome.is_valid else "Verification Status",
                    border_style="green" if outcome.is_valid else "yellow",
                )
            )

        if not (outcome.ok and outcome.is_valid):
            exit_code = 1

    _run(command)
    if exit_code:
        sys.exit(exit_code)


@domain.command("list")
@click.option("--all", "all_owners", is_flag=True, help="List domains of every owner")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
def domain_list(ctx: click.Context, all_owners: bool, json_output: bool):
    """List registered domains."""
    owner = None if all_owners else ctx.obj["owner"]

    async def command(manager: DomainManager) -> None:
        domains = await manager.list_domains(owner)

        if json_output:
            _print_json([d.to_dict() for d in domains])
            return

        if not domains:
            console.print("[dim]No domains registered[/dim]")
            return

        table = Table(title="Registered Domains")
        table.add_column("Domain", style="cyan")
        table.add_column("Status", justify="center")
        table.add_column("TXT", justify="center")
        table.add_column("A", justify="center")
        table.add_column("Last Check")

        for record in domains:
            color = STATUS_COLORS[record.status]
            checked = record.last_validation_attempt_at
            table.add_row(
                record.domain_name,
                f"[{color}]{record.status.value}[/{color}]",
                "[green]Yes[/green]" if record.txt_validated else "[yellow]No[/yellow]",
                "[green]Yes[/green]" if record.a_validated else "[yellow]No[/yellow]",
                checked.strftime("%Y-%m-%d %H:%M") if checked else "Never",
            )

        console.print(table)

    _run(command)


def _status_panel(record: Domain) -> Panel:
    color = STATUS_COLORS[record.status]
    content = (
        f"[bold]Domain:[/bold] {record.domain_name}\n"
        f"[bold]ID:[/bold] {record.id}\n"
        f"[bold]Status:[/bold] [{color}]{record.status.value}[/{color}]\n"
        f"[bold]TXT:[/bold] {_check(record.txt_validated)}\n"
        f"[bold]A:[/bold] {_check(record.a_validated)}\n"
        f"[bold]CNAME:[/bold] {_check(record.cname_validated)}\n"
        f"[bold]Auto retries:[/bold] {record.auto_retry_count}"
    )
    if record.last_validation_attempt_at:
        content += (
            f"\n[bold]Last Check:[/bold] "
            f"{record.last_validation_attempt_at.strftime('%Y-%m-%d %H:%M')}"
        )
    if record.validation_error:
        content += f"\n\n[red]Error:[/red] {record.validation_error}"
    return Panel(content, title=f"Domain Status: {record.domain_name}", border_style=color)


@domain.command("status")
@click.argument("domain_name")
@click.option("--logs", "log_count", type=int, default=0, help="Show the last N validation logs")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
def domain_status(ctx: click.Context, domain_name: str, log_count: int, json_output: bool):
    """Show detailed status and required DNS records for a domain."""
    owner = ctx.obj["owner"]

    async def command(manager: DomainManager) -> None:
        record = await manager.find_domain(domain_name, owner)
        instructions = [r.to_dict() for r in manager.dns_instructions(record)]
        logs = await manager.list_logs(record.id, owner, limit=log_count) if log_count else []

        if json_output:
            _print_json(
                {
                    "domain": record.to_dict(),
                    "dns_records": instructions,
                    "logs": [log.to_dict() for log in logs],
                }
            )
            return

        console.print(_status_panel(record))
        if not record.is_active:
            console.print(_records_table(instructions, "DNS Setup Required"))
        for log in logs:
            marker = "[green]ok[/green]" if log.success else "[red]failed[/red]"
            console.print(
                f"{log.created_at.strftime('%Y-%m-%d %H:%M:%S')} {marker} "
                f"{log.error_message or ''}"
            )

    _run(command)


@domain.command("remove")
@click.argument("domain_name")
@click.option("--keep-attached", is_flag=True, help="Do not detach from the hosting site")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def domain_remove(ctx: click.Context, domain_name: str, keep_attached: bool, yes: bool):
    """Remove a registered domain and its validation history."""
    if not yes and not click.confirm(f"Are you sure you want to remove '{domain_name}'?"):
        console.print("[dim]Cancelled[/dim]")
        return

    owner = ctx.obj["owner"]

    async def command(manager: DomainManager) -> None:
        record = await manager.find_domain(domain_name, owner)
        await manager.delete_domain(record.id, owner, detach=not keep_attached)
        console.print(f"[green]Domain removed:[/green] {record.domain_name}")

    _run(command)


@domain.command("records")
@click.argument("domain_name")
@click.option(
    "--registrar",
    "-r",
    help="Registrar code (cloudflare, namecheap, godaddy, digitalocean). "
    "Detected from the domain's nameservers when omitted.",
)
@click.option("--api-key", envvar="HOSTWARD_REGISTRAR_API_KEY", help="Registrar API key or token")
@click.option("--api-secret", envvar="HOSTWARD_REGISTRAR_API_SECRET", help="Registrar API secret")
@click.option("--user-id", help="Registrar account user name")
@click.option("--zone", help="Zone id (Cloudflare)")
@click.option("--client-ip", help="Whitelisted client IP (Namecheap)")
@click.option("--push", is_flag=True, help="Create/update the required records at the registrar")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
def domain_records(
    ctx: click.Context,
    domain_name: str,
    registrar: str | None,
    api_key: str | None,
    api_secret: str | None,
    user_id: str | None,
    zone: str | None,
    client_ip: str | None,
    push: bool,
    json_output: bool,
):
    """List a domain's records at its registrar, or push the required ones."""
    from hostward import registrars

    owner = ctx.obj["owner"]
    failed = False

    async def command(manager: DomainManager) -> None:
        nonlocal failed
        code = registrar
        if not code:
            detection = await registrars.detect_registrar(domain_name, manager.engine.resolver)
            if not detection.detected:
                failed = True
                reason = detection.error or (
                    f"unrecognized nameservers {', '.join(detection.nameservers)}"
                )
                if json_output:
                    _print_json({"detection": detection.to_dict(), "records": [], "error": reason})
                else:
                    console.print(
                        f"[red]Error:[/red] Could not detect the registrar for "
                        f"{detection.domain}: {reason}. Pass --registrar."
                    )
                return
            code = detection.registrar_code
            if not json_output:
                console.print(
                    f"Detected registrar [cyan]{code}[/cyan] "
                    f"from {', '.join(detection.nameservers)}",
                    style="dim",
                )

        credentials = registrars.RegistrarCredential(
            registrar_code=code,
            api_key=api_key,
            api_secret=api_secret,
            user_id=user_id,
            zone=zone,
            client_ip=client_ip,
        )

        if push:
            record = await manager.find_domain(domain_name, owner)
            change = await manager.push_records(record.id, credentials, owner)
            failed = not change.success
            if json_output:
                _print_json(change.to_dict())
                return
            if change.error:
                console.print(f"[red]Error:[/red] {change.error}")
                return
            console.print(
                f"[green]Created:[/green] {change.created}  "
                f"[cyan]Updated:[/cyan] {change.updated}  "
                f"[dim]Unchanged:[/dim] {change.unchanged}  "
                f"[red]Failed:[/red] {change.failed}"
            )
            for error in change.errors:
                console.print(f"  [red]x[/red] {error}")
            return

        result = await registrars.list_records(
            domain_name, credentials, timeout=manager.provisioning.config.http_timeout
        )
        failed = not result.ok
        if json_output:
            _print_json(result.to_dict())
        elif result.error:
            console.print(f"[red]Error:[/red] {result.error}")
        else:
            console.print(
                _records_table(
                    [r.to_dict() for r in result.records],
                    f"{code} records for {domain_name}",
                )
            )

    _run(command)
    if failed:
        sys.exit(1)


@domain.command("retry")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def domain_retry(json_output: bool):
    """Re-validate pending and failed domains that have retries left.

    Meant to be run periodically, e.g. from cron:

        */15 * * * * hostward domain retry
    """

    async def command(manager: DomainManager) -> None:
        outcomes = await manager.run_scheduled_validations()

        if json_output:
            _print_json([outcome.to_dict() for outcome in outcomes])
            return

        if not outcomes:
            console.print("[dim]No domains due for a retry[/dim]")
            return

        table = Table(title="Scheduled Validation")
        table.add_column("Domain", style="cyan")
        table.add_column("Status", justify="center")
        table.add_column("Retries", justify="right")
        table.add_column("Error")
        for outcome in outcomes:
            if outcome.domain is None:
                table.add_row("?", "[red]error[/red]", "", outcome.error or "")
                continue
            record = outcome.domain
            color = STATUS_COLORS[record.status]
            table.add_row(
                record.domain_name,
                f"[{color}]{record.status.value}[/{color}]",
                f"{record.auto_retry_count}/{manager.max_auto_retries}",
                record.validation_error or "",
            )
        console.print(table)

    _run(command)


@main.command()
@click.argument("domain_name", required=False)
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def diagnose(domain_name: str | None, json_output: bool):
    """Check hosting credentials, site reachability and a domain's DNS."""
    from hostward.diagnostics import DiagnosticService, Severity

    verdict = "healthy"

    async def command(manager: DomainManager) -> None:
        nonlocal verdict
        service = DiagnosticService(
            manager.provisioning.config, manager.provisioning, manager.engine.resolver
        )
        report = await service.diagnose(domain_name)
        verdict = report.status

        if json_output:
            _print_json(report.to_dict())
            return

        icons = {
            Severity.SUCCESS: "[green]ok[/green]",
            Severity.WARNING: "[yellow]![/yellow]",
            Severity.CRITICAL: "[red]x[/red]",
        }
        table = Table(title="Diagnostics")
        table.add_column("", justify="center")
        table.add_column("Check", style="cyan")
        table.add_column("Result")
        for check in report.checks:
            table.add_row(icons[check.severity], check.name, check.message)
        console.print(table)

        for check in report.checks:
            if check.severity != Severity.SUCCESS and check.recommendation:
                console.print(f"  [yellow]->[/yellow] {check.recommendation}")
        console.print(f"\n[bold]Overall:[/bold] {report.status}")

    _run(command)
    if verdict == "critical":
        sys.exit(1)


@main.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address")
@click.option("--port", "-p", type=int, default=8000, show_default=True, help="Bind port")
def serve(host: str, port: int):
    """Serve the HTTP API."""
    import uvicorn

    from hostward.server.app import create_app

    console.print(f"Starting Hostward API on http://{host}:{port}", style="yellow")
    uvicorn.run(create_app(), host=host, port=port, log_level="info")


if __name__ == "__main__":
    main()
