# Make sure to install rich: pip install rich

from typing import List, Optional, Tuple

from rich import box
from rich.panel import Panel
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from portswitch.model.Core.ActiveRoute import ActiveRoute
from portswitch.model.Core.RoutingEngine import TargetRegistry
from portswitch.model.Core.TrafficStats import TrafficStats, format_bytes
from portswitch.model.Core.header import VERSION


def build_dashboard(name: str, stats: TrafficStats, registry: TargetRegistry,
                    active_route: ActiveRoute, address: Optional[Tuple[str, int]] = None,
                    logs: Optional[List[Tuple[str, str]]] = None, state: str = "running") -> Table:
    snap = stats.snapshot()
    current = active_route.get()

    if state == "running":
        status_line = "[bold green]🟢 Running[/bold green]"
    else:
        status_line = f"[bold yellow]⏸ {state.title()}[/bold yellow]"
    listen = f"{address[0]}:{address[1]}" if address else "-"
    route_line = escape(current) if current else "[dim]none[/dim]"

    # Status Panel
    status_panel = Panel(
        f"{status_line}\n"
        f"[bold]Listening:[/bold] {listen}\n"
        f"[bold]Uptime:[/bold] {snap['uptime']} sec\n"
        f"[bold]Active Connections:[/bold] {snap['active_connections']}\n"
        f"[bold]Total Connections:[/bold] {snap['total_connections']}\n"
        f"[bold]Current Route:[/bold] {route_line}",
        title=f"🌐 [bold cyan]{escape(name)} v{VERSION}[/bold cyan]",
        border_style="green",
        padding=(1, 2),
    )

    # Traffic Panel
    traffic_panel = Panel(
        f"[bold]↑ Sent:[/bold] {format_bytes(snap['bytes_up'])}\n"
        f"[bold]↓ Received:[/bold] {format_bytes(snap['bytes_down'])}\n"
        f"[bold]Control Requests:[/bold] {snap['control_requests']}\n"
        f"[bold]Relayed Sessions:[/bold] {snap['relayed_sessions']}\n"
        f"[bold]Failed Sessions:[/bold] {snap['failed_sessions']}",
        title="📊 [bold blue]Traffic[/bold blue]",
        border_style="blue",
        padding=(1, 2),
    )

    # Routes Table
    route_table = Table(title="🧭 [bold yellow]Routes[/bold yellow]", expand=True, box=box.SIMPLE)
    route_table.add_column("ID", style="bold", justify="left")
    route_table.add_column("Remote Host", justify="left")
    route_table.add_column("Active", justify="center")
    for target in registry:
        active = target.id == current
        route_table.add_row(
            Text(target.id),
            Text(target.address),
            "[bold green]●[/bold green]" if active else "",
            style="green" if active else None,
        )

    # Logs Table
    log_table = Table(title="🧾 [bold red]Recent Logs[/bold red]", expand=True, box=box.SIMPLE)
    log_table.add_column("Level", style="bold cyan", justify="center")
    log_table.add_column("Message", style="dim white", justify="left")
    for level, msg in (logs or [])[-10:]:
        log_table.add_row(level, Text(msg))

    # Dashboard Layout
    grid = Table.grid(expand=True)
    grid.add_row(status_panel, traffic_panel)
    grid.add_row(route_table)
    grid.add_row(log_table)

    return grid
