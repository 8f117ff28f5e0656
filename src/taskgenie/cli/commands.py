# src/taskgenie/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import datetime
from pathlib import Path

from ..ai.client import friendly_ai_error_message
from ..ai.enhancement import FALLBACK_ENHANCEMENT, apply_enhancement
from ..core.state import AppState
from ..errors import (
    AIServiceError,
    AuthError,
    PersistenceError,
    TaskGenieError,
    TaskNotFoundError,
    ValidationError,
)
from ..tasks.importer import export_filename, export_rows, parse_due_date, parse_tags
from ..tasks.spreadsheet import SpreadsheetError
from ..tasks.task_models import Priority, Task, TaskDraft, TaskStatus
from ..tasks.views import default_order, filter_tasks, find_task, task_stats

CommandEmitter = Callable[[str], None]
CommandHandler = Callable[[AppState, list[str], CommandEmitter | None], str | Awaitable[str]]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /list, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def resolve(self, line: str) -> str | None:
        """Canonical command name for a "/command args" line (None if not a command)."""
        if not line.startswith("/"):
            return None
        parts = line[1:].split()
        if not parts:
            return None
        handler = self._handlers.get(parts[0].lower())
        for name, h in self._handlers.items():
            if h is handler and name in self._help:
                return name
        return None

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            result = handler(state, args, emit)
            if inspect.isawaitable(result):
                result = await result
            return result
        except AIServiceError as e:
            return f"[AI] {friendly_ai_error_message(e)}"
        except (AuthError, TaskNotFoundError) as e:
            return str(e)
        except ValidationError as e:
            return f"Invalid request: {e}"
        except PersistenceError as e:
            logger.info("Persistence failure in /%s: %s", name, e)
            return "Something went wrong while saving or loading tasks. Please try again."
        except TaskGenieError as e:
            return str(e)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _format_task(t: Task) -> str:
    mark = "x" if t.status.value == "Completed" else " "
    line = f"#{t.serial_number:<3} [{mark}] {t.title}  ({t.priority.value}, {t.status.value}, due {t.due_date.date().isoformat()})"
    if t.tags:
        line += f"  [tags: {', '.join(t.tags)}]"
    subs = [f"      {i}. [{'x' if s.is_completed else ' '}] {s.title}" for i, s in enumerate(t.subtasks, start=1)]
    return "\n".join([line, *subs])


def _require_session(state: AppState) -> None:
    if state.coordinator.user is None:
        raise AuthError("Not logged in. Use /login or /register first.")


def _lookup(state: AppState, ref: str) -> Task:
    task = find_task(state.coordinator.tasks, ref)
    if task is None:
        raise TaskNotFoundError(ref)
    return task


def cmd_help(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    user = state.coordinator.user
    mode = "REMOTE" if state.coordinator.incremental else "LOCAL"
    who = f"{user.username} <{user.email}>" if user else "(not logged in)"
    return (
        "Status:\n"
        f"  Storage: {mode}\n"
        f"  User: {who}\n"
        f"  AI pre-fill: {'ON' if state.ai_enabled else 'OFFLINE'}\n"
        f"  Tasks loaded: {len(state.coordinator.tasks)}"
    )


async def cmd_register(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if len(args) < 2:
        return "Usage: /register <email> <password> [username]"
    username = " ".join(args[2:]) if len(args) > 2 else ""
    user = await state.accounts.register(args[0], args[1], username)
    return f"Welcome, {user.username}! {len(state.coordinator.tasks)} tasks loaded."


async def cmd_login(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if len(args) != 2:
        return "Usage: /login <email> <password>"
    user = await state.accounts.login(args[0], args[1])
    return f"Logged in as {user.username}. {len(state.coordinator.tasks)} tasks loaded."


async def cmd_logout(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    await state.accounts.logout()
    return "Logged out."


def cmd_list(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    _require_session(state)
    tasks = filter_tasks(state.coordinator.tasks, " ".join(args)) if args else default_order(state.coordinator.tasks)
    if not tasks:
        return "No tasks found."
    return "\n".join(_format_task(t) for t in tasks)


_ADD_OPTIONS = ("--priority", "--due", "--tags")

# /edit field names -> Task attribute
_EDIT_FIELDS = {
    "title": "title",
    "description": "description",
    "desc": "description",
    "notes": "progress_notes",
    "progress": "progress_notes",
    "priority": "priority",
    "status": "status",
    "due": "due_date",
    "tags": "tags",
    "serial": "serial_number",
}
_EDIT_KEY = re.compile(r"(?:^|\s+)([A-Za-z]+)=")


def _choice(enum_cls: type[Priority] | type[TaskStatus], raw: str) -> Priority | TaskStatus:
    """Strict case/spacing-insensitive enum match ("in-progress" -> In Progress)."""
    wanted = re.sub(r"[\s_-]+", "", raw).lower()
    for member in enum_cls:
        if member.value.replace(" ", "").lower() == wanted:
            return member
    choices = ", ".join(m.value for m in enum_cls)
    raise ValidationError(f"Unknown {enum_cls.__name__.lower()} {raw!r} (choose from {choices})")


def _due(raw: str) -> datetime:
    due = parse_due_date(raw)
    if due is None:
        raise ValidationError(f"Unrecognized due date: {raw!r}")
    return due


def _edit_value(attr: str, raw: str) -> object:
    if attr == "priority":
        return _choice(Priority, raw)
    if attr == "status":
        return _choice(TaskStatus, raw)
    if attr == "due_date":
        return _due(raw)
    if attr == "tags":
        return parse_tags(raw)
    if attr == "serial_number":
        if not raw.isdigit():
            raise ValidationError(f"Serial number must be a positive integer, got {raw!r}")
        return int(raw)
    return raw


def parse_edit_args(text: str) -> dict[str, object]:
    """'priority=High status=In Progress' -> update patch. Values run until the next key=."""
    parts = _EDIT_KEY.split(text.strip())
    if parts[0].strip() or len(parts) < 3:
        raise ValidationError("Expected one or more field=value pairs")
    patch: dict[str, object] = {}
    for key, raw in zip(parts[1::2], parts[2::2]):
        attr = _EDIT_FIELDS.get(key.lower())
        if attr is None:
            raise ValidationError(f"Unknown field {key!r} (fields: {', '.join(sorted(_EDIT_FIELDS))})")
        patch[attr] = _edit_value(attr, raw.strip())
    return patch


async def cmd_add(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /add <title>                        -> create a task
    /add --ai <title>                   -> pre-fill description/priority/subtasks/tags first
    /add --priority High --due 2024-06-01 --tags work,q3 <title>
    """
    _require_session(state)
    usage = "Usage: /add [--ai] [--priority P] [--due DATE] [--tags a,b] <title>"
    use_ai = False
    options: dict[str, str] = {}
    words: list[str] = []
    it = iter(args)
    for arg in it:
        if arg == "--ai":
            use_ai = True
        elif arg in _ADD_OPTIONS:
            value = next(it, None)
            if value is None:
                return usage
            options[arg] = value
        else:
            words.append(arg)
    title = " ".join(words).strip()
    if not title:
        return usage

    draft = TaskDraft(title=title, tags=parse_tags(options.get("--tags")))
    if "--due" in options:
        draft = replace(draft, due_date=_due(options["--due"]))
    if use_ai:
        if emit:
            with contextlib.suppress(Exception):
                emit("[AI] Generating description and subtasks...")
        try:
            enhancement = await state.enhancer.enhance(title)
        except AIServiceError as e:
            if not e.retryable:
                raise
            # Retries exhausted: keep the draft flow going with the safe pre-fill.
            logger.info("AI pre-fill gave up, using fallback: %s", e)
            enhancement = FALLBACK_ENHANCEMENT
        draft = apply_enhancement(draft, enhancement)
    if "--priority" in options:
        draft = replace(draft, priority=_choice(Priority, options["--priority"]))

    tasks = await state.coordinator.create(draft)
    created = tasks[-1]
    return f"Created:\n{_format_task(created)}"


async def cmd_edit(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /edit <serial|id> field=value [field=value ...]
    Fields: title, description, notes, priority, status, due, tags (comma separated), serial.
    """
    _require_session(state)
    if len(args) < 2:
        return "Usage: /edit <serial|id> <field>=<value> [...]"
    task = _lookup(state, args[0])
    patch = parse_edit_args(" ".join(args[1:]))
    await state.coordinator.update(task.id, patch)
    updated = state.coordinator.find(task.id)
    return f"Updated:\n{_format_task(updated)}" if updated else "Task no longer exists."


async def cmd_done(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    _require_session(state)
    if len(args) != 1:
        return "Usage: /done <serial|id>"
    task = _lookup(state, args[0])
    await state.coordinator.toggle_status(task.id)
    updated = state.coordinator.find(task.id)
    return f"#{task.serial_number} is now {updated.status.value if updated else 'gone'}."


async def cmd_sub(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    _require_session(state)
    if len(args) != 2 or not args[1].isdigit():
        return "Usage: /sub <serial|id> <subtask number>"
    task = _lookup(state, args[0])
    idx = int(args[1]) - 1
    if not 0 <= idx < len(task.subtasks):
        return f"Task #{task.serial_number} has no subtask {args[1]}."
    await state.coordinator.toggle_subtask(task.id, task.subtasks[idx].id)
    updated = state.coordinator.find(task.id)
    return _format_task(updated) if updated else "Task no longer exists."


async def cmd_delete(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    _require_session(state)
    if not args:
        return "Usage: /delete <serial|id> [serial|id ...]"
    ids = list(dict.fromkeys(_lookup(state, ref).id for ref in args))
    if len(ids) == 1:
        await state.coordinator.delete_one(ids[0])
    else:
        await state.coordinator.delete_many(ids)
    return f"Deleted {len(ids)} task(s)."


async def cmd_renumber(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    _require_session(state)
    tasks = await state.coordinator.renumber()
    return f"Renumbered {len(tasks)} tasks by urgency and due date."


async def cmd_import(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    _require_session(state)
    if len(args) != 1:
        return "Usage: /import <file.csv|file.xlsx>"
    path = Path(args[0]).expanduser()
    try:
        rows = state.codec.decode(path.read_bytes(), filename=path.name)
    except (OSError, SpreadsheetError) as e:
        logger.info("Import read failed path=%s: %s", path, e)
        return "Failed to parse file. Please ensure it is a valid CSV or Excel file."
    if not rows:
        return "No data found in file."
    result = await state.coordinator.import_rows(rows)
    if not result.count:
        return "Could not recognize valid task data in the file."
    return f"Imported {result.count} tasks."


def cmd_export(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /export                      -> MyTasks.csv in the current directory
    /export <path> [serial ...]  -> selected tasks only when serials are given
    """
    _require_session(state)
    selected = [_lookup(state, ref).id for ref in args[1:]]
    target = Path(args[0]).expanduser() if args else Path(export_filename(bool(selected)))
    fmt = "xlsx" if target.suffix.lower() == ".xlsx" else "csv"
    rows = export_rows(state.coordinator.tasks, selected or None)
    target.write_bytes(state.codec.encode(rows, fmt=fmt))
    return f"Exported {len(rows)} tasks to {target}."


def cmd_stats(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    _require_session(state)
    s = task_stats(state.coordinator.tasks)
    return f"Total: {s.total}  Pending: {s.pending}  Completed: {s.completed}"


async def cmd_delete_account(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    _require_session(state)
    user = state.coordinator.user
    if user is None:
        raise AuthError("Not logged in. Use /login or /register first.")
    await state.accounts.delete_account(user)
    return "Account and all associated tasks deleted."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show storage mode, user and AI status.")
registry.register("register", cmd_register, help_text="Create an account: /register <email> <password> [username].")
registry.register("login", cmd_login, help_text="Log in: /login <email> <password>.")
registry.register("logout", cmd_logout, help_text="Log out of the current session.")
registry.register("list", cmd_list, help_text="List tasks, or search: /list [query].", aliases=["ls"])
registry.register("add", cmd_add, help_text="Create a task: /add [--ai] [--priority P] [--due DATE] [--tags a,b] <title>.", aliases=["new"])
registry.register("edit", cmd_edit, help_text="Edit a task: /edit <serial|id> field=value [...] (title, description, notes, priority, status, due, tags, serial).")
registry.register("done", cmd_done, help_text="Toggle completed/pending: /done <serial|id>.")
registry.register("sub", cmd_sub, help_text="Toggle a subtask: /sub <serial|id> <n>.")
registry.register("delete", cmd_delete, help_text="Delete tasks: /delete <serial|id> [...].", aliases=["rm"])
registry.register("renumber", cmd_renumber, help_text="Re-assign serial numbers by urgency and due date.")
registry.register("import", cmd_import, help_text="Import tasks from CSV/XLSX: /import <path>.")
registry.register("export", cmd_export, help_text="Export tasks: /export [path] [serial ...].")
registry.register("stats", cmd_stats, help_text="Show total/pending/completed counts.")
registry.register("delete-account", cmd_delete_account, help_text="Permanently delete your account and tasks.")
