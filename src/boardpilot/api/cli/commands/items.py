"""Item commands - Read work items."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from boardpilot.application.factory import WorkflowFactory
from boardpilot.core.domain.errors import BoardPilotError
from boardpilot.core.domain.models import WorkItem

app = typer.Typer(help="Read work items")
console = Console()


def _item_table(title: str, work_items: list[WorkItem]) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="cyan")
    table.add_column("Type", style="magenta")
    table.add_column("State", style="yellow")
    table.add_column("Title", style="white")
    for item in work_items:
        table.add_row(str(item.id), item.work_item_type, item.state, item.title)
    return table


async def _show(ctx_obj: dict, project: str, work_item_id: int, children: bool, related: bool):
    factory = WorkflowFactory(config_dir=ctx_obj.get("config_dir", "configs"))
    wf = factory.create_workflow(profile=ctx_obj.get("profile", "dev"))
    try:
        result = await wf.tools.execute(
            "read_work_item",
            {
                "project_id": project,
                "work_item_id": work_item_id,
                "include_children": children,
                "include_parent": True,
                "include_related": related,
            },
        )
    finally:
        await wf.aclose()
    return result


@app.command("show")
def show_item(
    ctx: typer.Context,
    project: str = typer.Argument(..., help="Project name or ID"),
    work_item_id: int = typer.Argument(..., help="Work item ID"),
    children: bool = typer.Option(False, "--children", "-c", help="List child work items"),
    related: bool = typer.Option(False, "--related", "-r", help="List related work items"),
):
    """Show a work item with its parent and, optionally, children and related items."""
    try:
        result = asyncio.run(_show(ctx.obj or {}, project, work_item_id, children, related))
    except BoardPilotError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    work_item = WorkItem.from_dict(result["work_item"])
    console.print(f"\n[bold cyan]#{work_item.id}[/bold cyan] [bold]{work_item.title}[/bold]")
    console.print(f"[bold]Type:[/bold] {work_item.work_item_type}")
    console.print(f"[bold]State:[/bold] {work_item.state}")
    if result.get("parent"):
        parent = WorkItem.from_dict(result["parent"])
        console.print(f"[bold]Parent:[/bold] #{parent.id} {parent.title}")
    if work_item.description:
        console.print(f"\n{work_item.description}")

    if children:
        items = [WorkItem.from_dict(raw) for raw in result.get("children", [])]
        console.print(_item_table("Children", items))
    if related:
        items = [WorkItem.from_dict(raw) for raw in result.get("related", [])]
        console.print(_item_table("Related", items))
