"""Workflow command - Specify, plan and execute for one work item."""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table

from boardpilot.application.factory import WorkflowFactory
from boardpilot.core.domain.errors import BoardPilotError
from boardpilot.core.domain.models import ExecutionPlan, ExecutionResult, SessionKey, SpecifyState

app = typer.Typer(help="Specify, plan and execute")
console = Console()


def parse_answers(values: list[str]) -> dict[str, str]:
    """Turn ``topic=answer`` options into an answers mapping."""
    answers = {}
    for value in values:
        topic, sep, answer = value.partition("=")
        if not sep or not topic.strip():
            raise typer.BadParameter(f"Expected topic=answer, got '{value}'", param_hint="--answer")
        answers[topic.strip()] = answer.strip()
    return answers


def print_plan(plan: ExecutionPlan) -> None:
    table = Table(title=f"Plan for #{plan.parent_work_item_id} {plan.parent_title}")
    table.add_column("#", style="cyan")
    table.add_column("Title", style="white")
    table.add_column("Type", style="magenta")
    table.add_column("Effort", justify="right")
    table.add_column("Depends on", style="dim")

    for index, (task, dependencies) in enumerate(zip(plan.subtasks, plan.dependency_indices())):
        table.add_row(
            str(index),
            task.title,
            task.work_item_type,
            str(task.estimated_effort or "-"),
            ", ".join(str(d) for d in dependencies) or "-",
        )

    console.print(table)
    console.print(f"[bold]Total effort:[/bold] {plan.total_estimated_effort}")
    if plan.notes:
        console.print(f"[dim]{plan.notes}[/dim]")


def print_result(result: ExecutionResult) -> None:
    style = "green" if result.success else "yellow"
    console.print(f"[bold {style}]{result.message}[/bold {style}]")
    for task in result.created_tasks:
        line = f"  [green]+[/green] {task.title} -> {task.url}"
        if task.link_error:
            line += f" [yellow](parent link failed: {task.link_error})[/yellow]"
        console.print(line)
    for task in result.failed_tasks:
        console.print(f"  [red]x[/red] {task.title}: {task.error}")


async def _run(
    ctx_obj: dict,
    project: str,
    work_item_id: int,
    answers: dict[str, str],
    approach: Optional[str],
    dry_run: bool,
    yes: bool,
    batch_size: Optional[int],
) -> bool:
    factory = WorkflowFactory(config_dir=ctx_obj.get("config_dir", "configs"))
    wf = factory.create_workflow(profile=ctx_obj.get("profile", "dev"))
    try:
        session = await wf.sessions.create(SessionKey(wf.organization_url, work_item_id), project)
        console.print(f"[dim]Session {session.id}[/dim]")

        specification = await wf.specify.specify(session.id, work_item_id, project, answers)
        if specification.state is SpecifyState.GATHERING:
            console.print("[yellow]More information needed:[/yellow]")
            for question in specification.clarifying_questions:
                console.print(f"  - {question}")
            console.print("Re-run with [cyan]--answer topic=text[/cyan] to continue.")
            return False

        console.print(specification.specification)

        plan = await wf.planner.plan(session.id, work_item_id, project, approach)
        print_plan(plan)

        if not plan.subtasks:
            console.print("[yellow]Nothing to create.[/yellow]")
            return True

        if not dry_run and not yes and not Confirm.ask(f"Create {len(plan.subtasks)} work items?"):
            console.print("[dim]Cancelled.[/dim]")
            return False

        result = await wf.executor.execute(
            session.id, project, dry_run=dry_run, batch_size=batch_size
        )
        print_result(result)
        return result.success
    finally:
        await wf.aclose()


@app.command("run")
def run_workflow(
    ctx: typer.Context,
    project: str = typer.Argument(..., help="Project name or ID"),
    work_item_id: int = typer.Argument(..., help="Work item to break down"),
    answer: list[str] = typer.Option(
        [], "--answer", "-a", help="Answer as topic=text (scenarios, stakeholders, reproduction, acceptance, constraints)"
    ),
    approach: Optional[str] = typer.Option(None, "--approach", help="Approach keyword: tdd, spike"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be created"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", help="Items created per batch"),
):
    """Specify, plan and create subtasks for a work item.

    Examples:
        # Preview the breakdown of a feature
        boardpilot workflow run MyProject 42 --dry-run

        # Answer clarifying questions and create the subtasks
        boardpilot workflow run MyProject 42 -a scenarios="Admin exports a report" -y
    """
    answers = parse_answers(answer)
    try:
        ok = asyncio.run(
            _run(ctx.obj or {}, project, work_item_id, answers, approach, dry_run, yes, batch_size)
        )
    except BoardPilotError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if not ok:
        raise typer.Exit(1)
