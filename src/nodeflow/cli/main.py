"""Nodeflow CLI — talks to the daemon over HTTP."""

import json
import time
from pathlib import Path
from typing import Optional

import httpx
import typer
from rich.console import Console
from rich.table import Table
from rich.tree import Tree

from nodeflow import __version__
from nodeflow.core.config import get_client_settings

app = typer.Typer(
    name="nodeflow",
    help="DAG workflow engine for text, HTTP and LLM nodes",
    no_args_is_help=True,
)
console = Console()

STATUS_COLORS = {
    "completed": "green",
    "active": "green",
    "failed": "red",
    "archived": "red",
    "cancelled": "red",
    "skipped": "dim",
    "running": "yellow",
}


def _color(status: str) -> str:
    color = STATUS_COLORS.get(status, "yellow")
    return f"[{color}]{status}[/{color}]"


def _client() -> httpx.Client:
    settings = get_client_settings()
    return httpx.Client(
        base_url=settings.host,
        headers={"Authorization": f"Bearer {settings.api_key}"},
        timeout=120,
    )


def _api(method: str, path: str, **kwargs) -> dict:
    """Make an API call to the daemon."""
    with _client() as client:
        try:
            resp = client.request(method, f"/api/v1{path}", **kwargs)
        except httpx.ConnectError:
            settings = get_client_settings()
            console.print(f"[red]Error:[/red] Cannot connect to Nodeflow daemon at {settings.host}")
            console.print("Start the daemon with: [bold]nodeflowd[/bold]")
            raise typer.Exit(1)

        if resp.status_code >= 400:
            detail = resp.json().get("detail", resp.text) if resp.headers.get("content-type", "").startswith("application/json") else resp.text
            console.print(f"[red]Error {resp.status_code}:[/red] {detail}")
            raise typer.Exit(1)

        return resp.json()


def _parse_json(value: Optional[str], option: str) -> dict:
    if not value:
        return {}
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as e:
        console.print(f"[red]Error:[/red] {option} is not valid JSON: {e}")
        raise typer.Exit(1)
    if not isinstance(parsed, dict):
        console.print(f"[red]Error:[/red] {option} must be a JSON object")
        raise typer.Exit(1)
    return parsed


# ─── Pipeline Commands ───


@app.command()
def pipelines():
    """List all pipelines."""
    result = _api("GET", "/pipelines")
    items = result["pipelines"]

    if not items:
        console.print("[dim]No pipelines defined[/dim]")
        return

    table = Table(title="Pipelines", show_lines=False)
    table.add_column("ID", style="dim", max_width=8)
    table.add_column("Name", style="bold")
    table.add_column("Status")
    table.add_column("Updated")

    for p in items:
        table.add_row(p["id"][:8], p["name"], _color(p["status"]), p.get("updated_at") or "—")

    console.print(table)


@app.command()
def apply(
    file: Path = typer.Argument(..., help="Pipeline definition (JSON)"),
    publish: bool = typer.Option(True, "--publish/--draft", help="Publish after creating"),
):
    """Create a pipeline with its nodes and edges from a JSON definition.

    The file holds ``name``, optional ``description``, a ``nodes`` list of
    ``{name, type, config}`` and an ``edges`` list of ``{source, target}``
    referring to node names.
    """
    if not file.exists():
        console.print(f"[red]Error:[/red] File not found: {file}")
        raise typer.Exit(1)
    definition = json.loads(file.read_text())

    pipeline = _api("POST", "/pipelines", json={
        "name": definition["name"],
        "description": definition.get("description"),
    })
    ids = {}
    for node in definition.get("nodes", []):
        created = _api("POST", f"/pipelines/{pipeline['id']}/nodes", json=node)
        ids[node["name"]] = created["id"]
    for edge in definition.get("edges", []):
        _api("POST", f"/pipelines/{pipeline['id']}/edges", json={
            "source_node_id": ids[edge["source"]],
            "target_node_id": ids[edge["target"]],
        })
    if publish:
        pipeline = _api("POST", f"/pipelines/{pipeline['id']}/publish")

    console.print(f"[green]✓[/green] Created pipeline: [bold]{pipeline['name']}[/bold] ({pipeline['id']})")
    console.print(f"  {len(ids)} node(s), {len(definition.get('edges', []))} edge(s)")


@app.command()
def graph(pipeline_id: str = typer.Argument(..., help="Pipeline ID")):
    """Show a pipeline's nodes grouped by execution order."""
    result = _api("GET", f"/pipelines/{pipeline_id}/graph")
    nodes = {n["id"]: n for n in result["nodes"]}

    tree = Tree(f"[bold]{result['pipeline']['name']}[/bold] ({_color(result['pipeline']['status'])})")
    for i, group in enumerate(result["groups"], start=1):
        branch = tree.add(f"step {i}")
        for node_id in group:
            node = nodes[node_id]
            upstream = [
                nodes[e["source_node_id"]]["name"]
                for e in result["edges"]
                if e["target_node_id"] == node_id
            ]
            after = f" [dim]← {', '.join(upstream)}[/dim]" if upstream else ""
            branch.add(f"{node['name']} [cyan]{node['type']}[/cyan]{after}")
    console.print(tree)


@app.command()
def archive(pipeline_id: str = typer.Argument(..., help="Pipeline ID")):
    """Archive a pipeline so it can no longer be run."""
    result = _api("POST", f"/pipelines/{pipeline_id}/archive")
    console.print(f"[yellow]Archived[/yellow] {result['name']}")


# ─── Run Commands ───


@app.command()
def run(
    pipeline_id: str = typer.Argument(..., help="Pipeline ID to run"),
    input_data: Optional[str] = typer.Option(None, "--input", "-i", help="JSON input data"),
    wait: bool = typer.Option(False, "--wait", "-w", help="Wait for the run to finish"),
    poll: float = typer.Option(1.0, "--poll", help="Seconds between status checks"),
):
    """Start a pipeline run."""
    created = _api("POST", f"/pipelines/{pipeline_id}/runs", json={"input_data": _parse_json(input_data, "--input")})
    console.print(f"[green]✓[/green] Started run [bold]{created['run_id']}[/bold]")
    if not wait:
        return

    with console.status("Running..."):
        while True:
            result = _api("GET", f"/runs/{created['run_id']}")
            if result["status"] in ("completed", "failed", "cancelled"):
                break
            time.sleep(poll)
    _print_run(result)


@app.command()
def status(run_id: str = typer.Argument(..., help="Run ID")):
    """Show a run's status, output or error, and per-node results."""
    _print_run(_api("GET", f"/runs/{run_id}"))


def _print_run(result: dict):
    console.print(f"\n{_color(result['status'])} run {result['id']} ({result['progress_percent']}%)")
    if result.get("duration_ms") is not None:
        console.print(f"  Duration: {result['duration_ms']}ms")
    if result.get("error_message"):
        console.print(f"  [red]Error:[/red] {result['error_message'][:200]}")
    if result.get("output_data"):
        console.print_json(json.dumps(result["output_data"], default=str))

    if result.get("nodes"):
        table = Table(show_lines=False)
        table.add_column("Node", style="dim", max_width=8)
        table.add_column("Status")
        table.add_column("Retries")
        table.add_column("Duration")
        table.add_column("Error")
        for n in result["nodes"]:
            duration = f"{n['duration_ms']}ms" if n.get("duration_ms") is not None else "—"
            table.add_row(
                n["node_id"][:8],
                _color(n["status"]),
                str(n["retry_count"]),
                duration,
                (n.get("error_message") or "")[:80],
            )
        console.print(table)


@app.command()
def cancel(run_id: str = typer.Argument(..., help="Run ID")):
    """Cancel a pending or running run."""
    result = _api("POST", f"/runs/{run_id}/cancel")
    console.print(f"[yellow]Cancelled[/yellow] run {result['id']}")


@app.command()
def runs(
    pipeline_id: Optional[str] = typer.Argument(None, help="Pipeline ID (default: all pipelines)"),
    last: int = typer.Option(10, "--last", "-l", help="Number of runs to show"),
):
    """Show recent runs."""
    path = f"/pipelines/{pipeline_id}/runs" if pipeline_id else "/runs"
    result = _api("GET", path, params={"limit": last})

    table = Table(title=f"Runs: {pipeline_id}" if pipeline_id else "Recent runs")
    table.add_column("ID", style="dim", max_width=8)
    table.add_column("Pipeline", style="dim", max_width=8)
    table.add_column("Status")
    table.add_column("Duration")
    table.add_column("Time")

    for r in result["runs"]:
        duration = f"{r['duration_ms']}ms" if r.get("duration_ms") is not None else "—"
        table.add_row(
            r["id"][:8],
            r["pipeline_id"][:8],
            _color(r["status"]),
            duration,
            r.get("created_at", "—") or "—",
        )

    console.print(table)


@app.command()
def version():
    """Show Nodeflow version."""
    console.print(f"nodeflow v{__version__}")


@app.command()
def health():
    """Show daemon status."""
    with _client() as client:
        try:
            resp = client.get("/health")
            data = resp.json()
            console.print(f"[green]●[/green] Nodeflow daemon v{data['version']} — running")
            queue = data.get("queue") or {}
            if queue:
                console.print(f"  Active tasks: {queue['active']} / {queue['max_concurrent']}")
            jobs = data.get("scheduler_jobs", [])
            console.print(f"  Scheduled jobs: {len(jobs)}")
        except httpx.ConnectError:
            settings = get_client_settings()
            console.print(f"[red]●[/red] Daemon not running at {settings.host}")


if __name__ == "__main__":
    app()
