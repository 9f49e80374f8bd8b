"""Rich rendering for task listings and details."""

from __future__ import annotations

from datetime import datetime

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from models.database import TaskStatus
from models.schemas import DecryptedTask

console = Console()
err_console = Console(stderr=True)


def _progress(task: DecryptedTask) -> str:
    done, total = task.progress
    return f"{done}/{total}" if total else "-"


def _date(value: datetime | None) -> str:
    return value.date().isoformat() if value else ""


def _description(task: DecryptedTask) -> str:
    text = escape(task.description)
    return f"[red]{text}[/red]" if task.decryption_failed else text


def task_table(tasks: list[DecryptedTask], *, title: str) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Done", justify="center")
    table.add_column("Title", style="bold")
    table.add_column("Description")
    table.add_column("Steps", justify="right")
    table.add_column("Today", justify="center")
    table.add_column("Created")

    for task in tasks:
        completed = task.status is TaskStatus.COMPLETED
        task_title = escape(task.title)
        table.add_row(
            str(task.id),
            "[green]✓[/green]" if completed else "",
            f"[strike]{task_title}[/strike]" if completed else task_title,
            _description(task),
            _progress(task),
            "★" if task.is_today else "",
            _date(task.created_at),
        )
    return table


def print_tasks(tasks: list[DecryptedTask], *, title: str) -> None:
    if not tasks:
        console.print("No tasks found")
        console.print("[dim]Create your first task to get started![/dim]")
        return
    console.print(task_table(tasks, title=title))


def print_task(task: DecryptedTask) -> None:
    completed = task.status is TaskStatus.COMPLETED
    mark = "[green]✓[/green]" if completed else "○"
    console.print(f"{mark} [bold]{escape(task.title)}[/bold]  [dim]{task.id}[/dim]")
    if task.jira_ticket_link:
        console.print(f"  Ticket: {escape(task.jira_ticket_link)}")
    if task.description:
        console.print(f"  {_description(task)}")

    done, total = task.progress
    if total:
        console.print(f"  Progress: {done} / {total}")
        for item in task.checklist:
            box = escape("[x]" if item.completed else "[ ]")
            console.print(f"    {box} {escape(item.text)}  [dim]{item.id}[/dim]")

    meta = [f"Created: {_date(task.created_at)}"]
    if completed and task.completed_at:
        meta.append(f"Completed: {_date(task.completed_at)}")
    if task.is_today:
        meta.append("Today")
    console.print("  [dim]" + "  ".join(meta) + "[/dim]")
