"""LiquidApp CLI: operator tasks for the claim-intake backend.

Commands:
  init-db            create the database tables
  serve              run the API server
  recompute-summary  rebuild a claim's rollup from its analyses
  check-rut          validate and normalize a Chilean RUT
  sweep-orphans      delete storage objects no evidence row references
"""
from __future__ import annotations

from datetime import timedelta
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table


app = typer.Typer(
    name="liquidapp",
    help="Insurance-claim intake and liquidation backend.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()


@app.command("init-db")
def init_database():
    """Create all tables."""
    from liquidapp.database import init_db

    with console.status("[bold]Creating database..."):
        init_db()
    console.print("[green]Database ready.[/green]")


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8000, "--port"),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes"),
):
    """Run the API server."""
    import uvicorn

    console.print(f"API running at [cyan]http://{host}:{port}[/cyan]; press Ctrl+C to stop")
    uvicorn.run("liquidapp.main:app", host=host, port=port, reload=reload)


@app.command("recompute-summary")
def recompute_summary(claim_id: str = typer.Argument(..., help="Claim id")):
    """Recompute severity, fraud score and cost range of a claim."""
    from liquidapp.database import SessionLocal
    from liquidapp.modules.claim_summary import update_claim_summary

    db = SessionLocal()
    try:
        summary = update_claim_summary(db, claim_id)
        db.commit()
    finally:
        db.close()

    if summary is None:
        console.print(f"[yellow]Claim {claim_id} has no analyses; rollup unchanged.[/yellow]")
        return

    table = Table(title=f"Claim {claim_id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("severidad_general", summary.severidad_general.value)
    table.add_row("score_fraude_general", f"{summary.score_fraude_general:.2f}")
    table.add_row("costo_estimado_min", str(summary.costo_estimado_min))
    table.add_row("costo_estimado_max", str(summary.costo_estimado_max))
    console.print(table)


@app.command("check-rut")
def check_rut(rut: str = typer.Argument(..., help="RUT, with or without dots")):
    """Validate a RUT's check digit."""
    from liquidapp.modules.rut import normalize_rut, validate_rut

    if not validate_rut(rut):
        console.print(f"[red]Invalid RUT: {rut}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Valid[/green] {normalize_rut(rut)}")


@app.command("sweep-orphans")
def sweep_orphans(
    dry_run: bool = typer.Option(False, "--dry-run", help="List orphans without deleting"),
    grace_minutes: Optional[int] = typer.Option(
        None, "--grace-minutes", help="Keep objects younger than this (default from settings)"
    ),
):
    """Delete uploaded objects that no evidence row references."""
    from liquidapp.config import settings
    from liquidapp.database import SessionLocal
    from liquidapp.modules.storage import get_storage
    from liquidapp.modules.storage_gc import sweep_orphaned_objects

    grace = timedelta(minutes=grace_minutes if grace_minutes is not None else settings.ORPHAN_GRACE_MINUTES)
    db = SessionLocal()
    try:
        result = sweep_orphaned_objects(db, get_storage(), grace, dry_run=dry_run)
    finally:
        db.close()

    if not result["orphans"]:
        console.print("[green]No orphaned objects.[/green]")
        return
    for key in result["orphans"]:
        console.print(f"  {key}")
    if dry_run:
        console.print(f"[yellow]{len(result['orphans'])} orphaned object(s) found (dry run).[/yellow]")
    else:
        console.print(f"[green]Deleted {result['deleted']} orphaned object(s).[/green]")


if __name__ == "__main__":
    app()
