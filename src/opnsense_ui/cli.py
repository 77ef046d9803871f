"""Command-line interface for the OPNsense UI provider."""

import asyncio
import json
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

import httpx
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import ApplianceConfig, load_config
from .models.records import HostOverride, Resolution, StaticMapping
from .models.resource_id import HostOverrideID, StaticMappingID
from .observability.logger import add_context, configure_logging
from .observability.metrics import get_global_collector
from .provider import ApplianceProvider
from .utils.exceptions import ApplianceError

app = typer.Typer(
    name="opnsense-ui",
    help="OPNsense UI provider - DHCP static mappings and DNS host overrides",
    add_completion=False,
)
dhcp_app = typer.Typer(help="Manage DHCP static mappings", add_completion=False)
dns_app = typer.Typer(help="Manage Unbound DNS host overrides", add_completion=False)
app.add_typer(dhcp_app, name="dhcp")
app.add_typer(dns_app, name="dns")

console = Console()

T = TypeVar("T")


@app.callback()
def main(
    ctx: typer.Context,
    url: str | None = typer.Option(
        None, "--url", envvar="OPNSENSE_URI", help="Appliance root URL (https://...)"
    ),
    username: str | None = typer.Option(
        None, "--username", "-u", envvar="OPNSENSE_USER_ID", help="Login user"
    ),
    password: str | None = typer.Option(
        None, "--password", "-p", envvar="OPNSENSE_USER_PASSWORD", help="Login password"
    ),
    insecure: bool = typer.Option(
        False,
        "--insecure",
        envvar="OPNSENSE_ALLOW_UNVERIFIED_TLS",
        help="Trust self-signed appliance certificates",
    ),
    config_file: Path | None = typer.Option(None, "--config", "-c", help="Configuration file"),
    log_level: str = typer.Option("WARNING", "--log-level", envvar="LOG_LEVEL", help="Log level"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON"),
) -> None:
    """
    Manage an OPNsense appliance through its web UI.

    Connection options can also be set through OPNSENSE_URI, OPNSENSE_USER_ID,
    OPNSENSE_USER_PASSWORD and OPNSENSE_ALLOW_UNVERIFIED_TLS.
    """
    configure_logging(level=log_level, json_logs=json_logs)
    ctx.obj = {
        "url": url,
        "username": username,
        "password": password,
        "insecure": insecure,
        "config_file": config_file,
    }


def _appliance_config(ctx: typer.Context) -> ApplianceConfig:
    """Connection settings from the config file, overridden by options."""
    options = ctx.obj or {}
    config: ApplianceConfig | None = None

    if options.get("config_file"):
        settings = load_config(options["config_file"])
        configure_logging(
            level=settings.logging.level,
            json_logs=settings.logging.json_logs,
            log_file=settings.logging.file,
        )
        config = settings.appliance

    if config is None:
        if not (options.get("url") and options.get("username") and options.get("password")):
            console.print("\n[bold red]ERROR:[/bold red] Appliance connection required")
            console.print(
                "(Set OPNSENSE_URI/OPNSENSE_USER_ID/OPNSENSE_USER_PASSWORD, "
                "pass --url/--username/--password, or provide --config)"
            )
            raise typer.Exit(code=1)
        config = ApplianceConfig(
            base_url=options["url"],
            username=options["username"],
            password=options["password"],
        )
    else:
        config.base_url = options.get("url") or config.base_url
        config.username = options.get("username") or config.username
        config.password = options.get("password") or config.password

    if options.get("insecure"):
        config.allow_unverified_tls = True
    return config


def _run(ctx: typer.Context, action: Callable[[ApplianceProvider], Awaitable[T]]) -> T:
    """Connect, run ``action`` and map provider errors to exit code 1."""
    try:
        config = _appliance_config(ctx)
        add_context(appliance=config.root_uri)

        async def runner() -> T:
            provider = await ApplianceProvider.configure(config)
            try:
                async with provider:
                    return await action(provider)
            finally:
                get_global_collector().log_summary()

        return asyncio.run(runner())
    except (ApplianceError, ValueError, FileNotFoundError, httpx.HTTPError) as e:
        console.print(f"\n[bold red]ERROR:[/bold red] {e}")
        raise typer.Exit(code=1) from e


def _mapping_table(title: str, resolutions: list[Resolution[StaticMapping]]) -> Table:
    table = Table(title=title)
    table.add_column("Position", justify="right", style="dim")
    table.add_column("Resource ID", style="cyan")
    table.add_column("IP address")
    table.add_column("Hostname")
    for resolution in resolutions:
        mapping = resolution.record
        table.add_row(
            str(resolution.position),
            str(StaticMappingID.for_record(mapping)),
            mapping.ip_address,
            mapping.hostname or "",
        )
    return table


def _override_table(title: str, resolutions: list[Resolution[HostOverride]]) -> Table:
    table = Table(title=title)
    table.add_column("Position", justify="right", style="dim")
    table.add_column("Resource ID", style="cyan")
    table.add_column("Type")
    table.add_column("Host")
    table.add_column("Domain")
    table.add_column("Value")
    for resolution in resolutions:
        override = resolution.record
        table.add_row(
            str(resolution.position),
            str(HostOverrideID.for_record(override, resolution.position)),
            override.record_type,
            override.host,
            override.domain,
            override.ip_address,
        )
    return table


def _print_record(resource_id: str, record: StaticMapping | HostOverride) -> None:
    table = Table(show_header=False, box=None)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Resource ID", f"[cyan]{resource_id}[/cyan]")
    for name, value in record.model_dump().items():
        table.add_row(name, "" if value is None else str(value))
    console.print(table)


@app.command()
def version() -> None:
    """Show version information and features."""
    from . import __version__

    console.print(
        Panel.fit(
            "[bold]OPNsense UI Provider[/bold]\n\n"
            f"Version: [cyan]{__version__}[/cyan]\n"
            "Python: 3.11+\n\n"
            "[bold]Core Features:[/bold]\n"
            "- Browser-style session with anti-forgery token handling\n"
            "- Header-driven table scraping\n"
            "- Natural key to row position resolution\n"
            "- Prime, submit and apply form mutations\n"
            "- DHCP static mappings and lease listing\n"
            "- Unbound DNS host overrides\n"
            "- Structured logging and request metrics\n\n"
            "[dim]Drives the admin web UI, no appliance API required[/dim]",
            title="About",
            border_style="blue",
        )
    )


@app.command()
def leases(ctx: typer.Context) -> None:
    """
    List current DHCP leases from the status page.

    Examples:
        opnsense-ui leases
    """
    results = _run(ctx, lambda provider: provider.list_leases())

    table = Table(title=f"DHCP leases ({len(results)})")
    for column in ("Interface", "IP address", "MAC address", "Hostname", "End", "Status", "Type"):
        table.add_column(column)
    for lease in results:
        table.add_row(
            lease.interface,
            lease.ip_address,
            lease.mac,
            lease.hostname,
            lease.end,
            lease.status,
            lease.lease_type,
        )
    console.print(table)


# -----------------------------------------------------------------------------
# DHCP static mappings
# -----------------------------------------------------------------------------


@dhcp_app.command("list")
def dhcp_list(
    ctx: typer.Context,
    interface: str = typer.Option(..., "--interface", "-i", help="DHCP interface, e.g. opt3"),
) -> None:
    """List the static mappings of an interface."""
    results = _run(ctx, lambda provider: provider.list_static_mappings(interface))
    console.print(_mapping_table(f"Static mappings on {interface} ({len(results)})", results))


@dhcp_app.command("create")
def dhcp_create(
    ctx: typer.Context,
    interface: str = typer.Argument(..., help="DHCP interface, e.g. opt3"),
    mac: str = typer.Argument(..., help="Client MAC address"),
    ip_address: str = typer.Argument(..., help="Reserved IP address"),
    hostname: str | None = typer.Option(None, "--hostname", "-n", help="Client hostname"),
) -> None:
    """
    Create a static mapping.

    Examples:
        opnsense-ui dhcp create opt3 aa:bb:cc:dd:ee:ff 10.69.0.99 --hostname terraform
    """

    async def action(provider: ApplianceProvider) -> tuple[str, StaticMapping]:
        mapping = StaticMapping(
            interface=interface, mac=mac, ip_address=ip_address, hostname=hostname
        )
        return await provider.create_static_mapping(mapping)

    resource_id, record = _run(ctx, action)
    console.print(f"[green]Created[/green] static mapping [cyan]{resource_id}[/cyan]")
    _print_record(resource_id, record)


@dhcp_app.command("read")
def dhcp_read(
    ctx: typer.Context,
    resource_id: str = typer.Argument(..., help="Resource ID: interface/mac"),
) -> None:
    """Show the current state of a static mapping."""
    resource_id, record = _run(ctx, lambda provider: provider.read_static_mapping(resource_id))
    _print_record(resource_id, record)


@dhcp_app.command("update")
def dhcp_update(
    ctx: typer.Context,
    resource_id: str = typer.Argument(..., help="Resource ID: interface/mac"),
    ip_address: str = typer.Argument(..., help="New reserved IP address"),
    hostname: str | None = typer.Option(None, "--hostname", "-n", help="New hostname"),
) -> None:
    """
    Change the address and hostname of a static mapping.

    Examples:
        opnsense-ui dhcp update opt3/aa:bb:cc:dd:ee:ff 10.69.0.100 --hostname terraform2
    """

    async def action(provider: ApplianceProvider) -> tuple[str, StaticMapping]:
        handle = StaticMappingID.parse(resource_id)
        mapping = StaticMapping(
            interface=handle.interface, mac=handle.mac, ip_address=ip_address, hostname=hostname
        )
        return await provider.update_static_mapping(resource_id, mapping)

    new_id, record = _run(ctx, action)
    console.print(f"[green]Updated[/green] static mapping [cyan]{new_id}[/cyan]")
    _print_record(new_id, record)


@dhcp_app.command("delete")
def dhcp_delete(
    ctx: typer.Context,
    resource_id: str = typer.Argument(..., help="Resource ID: interface/mac"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete a static mapping."""
    if not yes and not typer.confirm(f"Delete static mapping {resource_id}?"):
        console.print("[yellow]Aborted.[/yellow]")
        raise typer.Exit()

    _run(ctx, lambda provider: provider.delete_static_mapping(resource_id))
    console.print(f"[green]Deleted[/green] static mapping [cyan]{resource_id}[/cyan]")


# -----------------------------------------------------------------------------
# DNS host overrides
# -----------------------------------------------------------------------------


@dns_app.command("list")
def dns_list(ctx: typer.Context) -> None:
    """List all host overrides."""
    results = _run(ctx, lambda provider: provider.list_host_overrides())
    console.print(_override_table(f"Host overrides ({len(results)})", results))


@dns_app.command("create")
def dns_create(
    ctx: typer.Context,
    host: str = typer.Argument(..., help="Host name"),
    domain: str = typer.Argument(..., help="Domain"),
    ip_address: str = typer.Argument(..., help="Address the name resolves to"),
    record_type: str = typer.Option("A", "--type", "-t", help="Record type (A, AAAA)"),
) -> None:
    """
    Create a host override.

    Examples:
        opnsense-ui dns create printer lan.example.com 10.69.0.10
    """

    async def action(provider: ApplianceProvider) -> tuple[str, HostOverride]:
        override = HostOverride(
            record_type=record_type, host=host, domain=domain, ip_address=ip_address
        )
        return await provider.create_host_override(override)

    resource_id, record = _run(ctx, action)
    console.print(f"[green]Created[/green] host override [cyan]{resource_id}[/cyan]")
    _print_record(resource_id, record)


@dns_app.command("read")
def dns_read(
    ctx: typer.Context,
    resource_id: str = typer.Argument(..., help="Resource ID: type/host/domain/ip/position"),
) -> None:
    """Show the current state of a host override."""
    resource_id, record = _run(ctx, lambda provider: provider.read_host_override(resource_id))
    _print_record(resource_id, record)


@dns_app.command("update")
def dns_update(
    ctx: typer.Context,
    resource_id: str = typer.Argument(..., help="Resource ID: type/host/domain/ip/position"),
    ip_address: str = typer.Argument(..., help="New address"),
) -> None:
    """Point a host override at a new address."""
    new_id, record = _run(
        ctx, lambda provider: provider.update_host_override(resource_id, ip_address)
    )
    console.print(f"[green]Updated[/green] host override [cyan]{new_id}[/cyan]")
    _print_record(new_id, record)


@dns_app.command("delete")
def dns_delete(
    ctx: typer.Context,
    resource_id: str = typer.Argument(..., help="Resource ID: type/host/domain/ip/position"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete a host override."""
    if not yes and not typer.confirm(f"Delete host override {resource_id}?"):
        console.print("[yellow]Aborted.[/yellow]")
        raise typer.Exit()

    _run(ctx, lambda provider: provider.delete_host_override(resource_id))
    console.print(f"[green]Deleted[/green] host override [cyan]{resource_id}[/cyan]")


# -----------------------------------------------------------------------------
# Self-test
# -----------------------------------------------------------------------------


@app.command()
def self_test(
    ctx: typer.Context,
    interface: str = typer.Option("opt3", "--interface", "-i", help="DHCP interface to test on"),
    mac: str = typer.Option("aa:bb:cc:dd:ee:ff", "--mac", help="MAC address of the test mapping"),
    ip_address: str = typer.Option("10.69.0.99", "--ip", help="Initial test address"),
    updated_ip_address: str = typer.Option(
        "10.69.0.100", "--updated-ip", help="Address the update switches to"
    ),
    report_file: Path | None = typer.Option(
        None, "--report", help="Save detailed test report to file"
    ),
) -> None:
    """
    Run the static mapping lifecycle against a live appliance.

    Creates a mapping, updates it, deletes it and checks that the
    interface's table ends up as it started. The run refuses to start when
    the test MAC is already mapped.

    Examples:
        opnsense-ui self-test --url https://fw.example.com --username root
        opnsense-ui self-test --interface opt2 --report self_test.json
    """
    from .self_test import LifecycleScenario, ProviderSelfTest

    scenario = LifecycleScenario(
        interface=interface,
        mac=mac,
        ip_address=ip_address,
        updated_ip_address=updated_ip_address,
    )

    console.print(
        Panel.fit(
            f"[bold blue]OPNsense UI Self-Test[/bold blue]\n\n"
            f"Interface: [cyan]{scenario.interface}[/cyan]\n"
            f"MAC: [cyan]{scenario.mac}[/cyan]\n"
            f"Addresses: [cyan]{scenario.ip_address} -> {scenario.updated_ip_address}[/cyan]\n"
            f"Report: [green]{'Enabled' if report_file else 'Disabled'}[/green]",
            border_style="blue",
        )
    )

    start_time = datetime.now()

    async def action(provider: ApplianceProvider) -> dict[str, Any]:
        return await ProviderSelfTest(provider, scenario).run()

    report = _run(ctx, action)
    duration = (datetime.now() - start_time).total_seconds()

    summary = report["summary"]
    table = Table(title="Self-Test Results")
    table.add_column("Category", style="cyan")
    table.add_column("Passed", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    for category, counts in report["categories"].items():
        table.add_row(category, str(counts["passed"]), str(counts["failed"]))
    console.print(table)

    console.print("\n[bold]Overall Results:[/bold]")
    console.print(f"Passed: [green]{summary['total_passed']}[/green]")
    console.print(f"Failed: [red]{summary['total_failed']}[/red]")
    console.print(f"Duration: {duration:.1f}s")

    if report["failures"]:
        console.print("\n[red]Failed Tests:[/red]")
        for failure in report["failures"]:
            console.print(f"  • {failure}")

    if report_file:
        with open(report_file, "w") as f:
            json.dump({**report, "duration_seconds": duration}, f, indent=2)
        console.print(f"\n[detailed report saved to: [cyan]{report_file}[/cyan]]")

    if not report["overall_success"]:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
