"""Today's Tasks CLI application using Typer.

Every command opens one record-store client, resolves the signed-in session,
and runs a single service call. Errors are rendered through
``cli.error_handlers`` with a stable exit code.
"""

import asyncio
import json
import uuid
from collections.abc import Awaitable, Callable
from datetime import date, datetime
from typing import List, Optional, TypeVar

import typer

from db.connection import get_client
from models.database import TaskStatus
from models.schemas import TaskCreate, TaskFilter
from services import auth_service
from services.task_service import TaskService

from cli.error_handlers import error_payload
from cli.render import console, err_console, print_task, print_tasks

T = TypeVar("T")

app = typer.Typer(
    name="todays-tasks",
    help="Today's Tasks - encrypted task lists backed by Supabase",
    no_args_is_help=True,
)

FILTER_TITLES = {
    TaskFilter.TODAY: "Today's Tasks",
    TaskFilter.PENDING: "Pending",
    TaskFilter.COMPLETED: "Completed",
    TaskFilter.ALL: "All Tasks",
}


def _run(coro: Awaitable[T]) -> T:
    """Run a coroutine, turning known errors into an error envelope + exit code."""
    try:
        return asyncio.run(coro)
    except Exception as exc:
        exit_code, payload = error_payload(exc)
        err_console.print(f"[red]Error:[/red] {payload['error']['message']}", highlight=False)
        err_console.print_json(json.dumps(payload))
        raise typer.Exit(code=exit_code) from exc


async def _with_tasks(fn: Callable[[TaskService], Awaitable[T]]) -> T:
    async with get_client() as client:
        session = await auth_service.require_session(client)
        return await fn(TaskService(client, session))


def _parse_date(value: Optional[str]) -> Optional[date]:
    if value is None:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise ValueError(f"Invalid --date {value!r}; expected YYYY-MM-DD") from exc


# ─── Auth ─────────────────────────────────────────────────────────────────────


@app.command()
def signup(
    email: str = typer.Option(..., prompt=True),
    password: str = typer.Option(..., prompt=True, hide_input=True, confirmation_prompt=True),
) -> None:
    """Create your account."""

    async def go():
        async with get_client() as client:
            try:
                return await auth_service.sign_up(client, email, password)
            except auth_service.SignUpPendingConfirmation as exc:
                console.print(f"[green]{exc}[/green]")
                return None

    session = _run(go())
    if session is not None:
        console.print(f"Signed up and logged in as [bold]{session.email}[/bold]")


@app.command()
def login(
    email: str = typer.Option(..., prompt=True),
    password: str = typer.Option(..., prompt=True, hide_input=True),
) -> None:
    """Sign in to your account."""

    async def go():
        async with get_client() as client:
            return await auth_service.sign_in(client, email, password)

    session = _run(go())
    console.print(f"Logged in as: [bold]{session.email}[/bold]")


@app.command()
def logout() -> None:
    """Sign out and forget the local session."""

    async def go():
        async with get_client() as client:
            await auth_service.sign_out(client)

    _run(go())
    console.print("Signed out")


@app.command()
def whoami() -> None:
    """Show the signed-in account."""

    async def go():
        async with get_client() as client:
            return await auth_service.require_session(client)

    session = _run(go())
    console.print(f"Logged in as: [bold]{session.email}[/bold]")


# ─── Tasks ────────────────────────────────────────────────────────────────────


@app.command()
def add(
    title: str = typer.Argument(..., help="Task title"),
    description: str = typer.Option("", "--description", "-d", help="Encrypted before upload"),
    link: Optional[str] = typer.Option(None, "--link", "-l", help="Jira ticket link"),
    step: Optional[List[str]] = typer.Option(None, "--step", "-s", help="Checklist step (repeatable)"),
    not_today: bool = typer.Option(False, "--not-today", help="Don't mark as today's task"),
) -> None:
    """Create a new task."""

    async def go():
        body = TaskCreate(
            title=title,
            description=description,
            jira_ticket_link=link,
            checklist=step or [],
            is_today=not not_today,
        )
        return await _with_tasks(lambda svc: svc.create_task(body))

    task = _run(go())
    console.print(f"Created task [bold]{task.id}[/bold]")


@app.command("list")
def list_tasks(
    filter_: TaskFilter = typer.Option(TaskFilter.TODAY, "--filter", "-f", case_sensitive=False),
    on_date: Optional[str] = typer.Option(None, "--date", help="Only tasks created on YYYY-MM-DD"),
) -> None:
    """List tasks (today's tasks by default)."""

    async def go():
        day = _parse_date(on_date)
        return await _with_tasks(lambda svc: svc.list_tasks(filter_, on_date=day))

    tasks = _run(go())
    print_tasks(tasks, title=FILTER_TITLES[filter_])


@app.command()
def show(task_id: uuid.UUID) -> None:
    """Show one task with its checklist."""
    print_task(_run(_with_tasks(lambda svc: svc.get_task(task_id))))


@app.command()
def done(task_id: uuid.UUID) -> None:
    """Mark a task completed."""
    print_task(_run(_with_tasks(lambda svc: svc.set_task_status(task_id, TaskStatus.COMPLETED))))


@app.command()
def reopen(task_id: uuid.UUID) -> None:
    """Mark a task pending again."""
    print_task(_run(_with_tasks(lambda svc: svc.set_task_status(task_id, TaskStatus.PENDING))))


@app.command()
def toggle(task_id: uuid.UUID) -> None:
    """Flip a task between pending and completed."""
    print_task(_run(_with_tasks(lambda svc: svc.toggle_task_status(task_id))))


@app.command()
def check(item_id: uuid.UUID) -> None:
    """Tick (or untick) a checklist step."""
    completed = _run(_with_tasks(lambda svc: svc.toggle_checklist_item(item_id)))
    console.print("Step completed" if completed else "Step reopened")


@app.command()
def today(
    task_id: uuid.UUID,
    off: bool = typer.Option(False, "--off", help="Remove from today's list"),
) -> None:
    """Add a task to (or remove it from) today's list."""
    print_task(_run(_with_tasks(lambda svc: svc.set_today(task_id, not off))))


@app.command()
def step(task_id: uuid.UUID, text: str) -> None:
    """Append a checklist step to a task."""
    print_task(_run(_with_tasks(lambda svc: svc.add_checklist_item(task_id, text))))


@app.command()
def delete(
    task_id: uuid.UUID,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete a task and its checklist."""
    if not yes:
        typer.confirm("Are you sure you want to delete this task?", abort=True)
    _run(_with_tasks(lambda svc: svc.delete_task(task_id)))
    console.print(f"Deleted task {task_id}")
