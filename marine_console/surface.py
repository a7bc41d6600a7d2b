"""
Presentation surface protocol and implementations.

The console core never draws anything itself. Views, edit sessions and the
cascade resolver report through a Surface:
- render_table / render_cell: table output
- open_editor: inline editor for one cell
- alert / confirm / choose_cascade: operator dialogs

Implementations:
    - TerminalSurface: plain-text tables and stdin prompts for the CLI
    - RecordingSurface: captures output and answers from a script (tests,
      headless runs)

How to change safely:
    - Protocol changes require updating both implementations
    - Dialog methods are coroutines; rendering methods are not
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

logger = logging.getLogger(__name__)

Option = Tuple[str, str]
"""(value, label) pair offered by a selectable list."""


@dataclass
class RenderedRow:
    """Display text of one row, keyed by column."""

    record_id: Any
    cells: Dict[str, str]


@dataclass
class Table:
    """A rendered page of a view.

    Attributes:
        view: View name
        columns: Column order
        rows: Rendered rows
        index: Zero-based page index
        total_pages: Total pages reported by the server
        sort: "field asc|desc" or None
        state: View state name at render time
    """

    view: str
    columns: List[str]
    rows: List[RenderedRow]
    index: int
    total_pages: int
    sort: Optional[str] = None
    state: str = "ready"


@runtime_checkable
class Surface(Protocol):
    """Protocol every presentation surface implements."""

    def render_table(self, table: Table) -> None:
        """Replace the rendered contents of a view."""
        ...

    def render_cell(self, view: str, record_id: Any, field_name: str, text: str) -> None:
        """Replace the text of one cell."""
        ...

    def open_editor(
        self,
        view: str,
        record_id: Any,
        field_name: str,
        value: str,
        options: Optional[Sequence[Option]] = None,
    ) -> None:
        """Show an inline input (or a selectable list when options are given)."""
        ...

    async def alert(self, message: str, title: str) -> None:
        """Show a notice and wait for acknowledgement."""
        ...

    async def confirm(self, message: str, title: str) -> bool:
        """Ask a yes/no question."""
        ...

    async def choose_cascade(
        self,
        message: str,
        choices: Dict[str, List[str]],
    ) -> Optional[Dict[str, bool]]:
        """Ask which dependent kinds to cascade into. None cancels the delete."""
        ...


def format_table(table: Table) -> str:
    """Render a Table as aligned plain text."""
    header = list(table.columns)
    body = [[row.cells.get(col, "") for col in header] for row in table.rows]
    widths = [len(col) for col in header]
    for line in body:
        widths = [max(w, len(cell)) for w, cell in zip(widths, line)]

    def fmt(cells: Sequence[str]) -> str:
        return "  ".join(cell.ljust(width) for cell, width in zip(cells, widths)).rstrip()

    lines = [fmt(header), fmt(["-" * w for w in widths])]
    lines.extend(fmt(line) for line in body)
    footer = f"[{table.view}] page {table.index + 1} of {table.total_pages}"
    if table.sort:
        footer += f", sorted by {table.sort}"
    if table.state == "error":
        footer += " (stale: last load failed)"
    lines.append(footer)
    return "\n".join(lines)


class TerminalSurface:
    """Surface for the command-line console.

    Prints tables to stdout and reads answers from stdin without blocking
    the event loop.

    Attributes:
        assume_yes: Answer yes to confirmations without asking
        cascade: Answer for every cascade question when assume_yes is set
    """

    def __init__(self, assume_yes: bool = False, cascade: bool = False) -> None:
        self.assume_yes = assume_yes
        self.cascade = cascade

    def render_table(self, table: Table) -> None:
        print(format_table(table))
        print()

    def render_cell(self, view: str, record_id: Any, field_name: str, text: str) -> None:
        print(f"[{view}] #{record_id} {field_name} = {text}")

    def open_editor(
        self,
        view: str,
        record_id: Any,
        field_name: str,
        value: str,
        options: Optional[Sequence[Option]] = None,
    ) -> None:
        print(f"[{view}] editing #{record_id} {field_name} (current: {value})")
        for option_value, label in options or ():
            print(f"    {option_value or '(none)'}: {label}")

    async def alert(self, message: str, title: str) -> None:
        print(f"{title}: {message}")

    async def confirm(self, message: str, title: str) -> bool:
        if self.assume_yes:
            print(f"{title}: {message} [auto-confirmed]")
            return True
        answer = await asyncio.to_thread(input, f"{title}: {message} [y/N] ")
        return answer.strip().lower() in ("y", "yes")

    async def choose_cascade(
        self,
        message: str,
        choices: Dict[str, List[str]],
    ) -> Optional[Dict[str, bool]]:
        print(message)
        decision: Dict[str, bool] = {}
        for kind, labels in choices.items():
            for label in labels:
                print(f"  - {label}")
            question = f"Also delete related {kind}?"
            if self.assume_yes:
                answer = "yes" if self.cascade else "no"
                print(f"Cascade: {question} [auto-answered {answer}]")
                decision[kind] = self.cascade
            else:
                decision[kind] = await self.confirm(question, "Cascade")
        if not await self.confirm("Proceed with delete?", "Confirm delete"):
            return None
        return decision


@dataclass
class RecordingSurface:
    """Surface that records everything and answers from a script.

    Attributes:
        confirm_answers: Answers popped by confirm(); default_confirm when empty
        cascade_answers: Decisions popped by choose_cascade(); None cancels
        cascade_gate: If set, choose_cascade waits for it before answering

    Example:
        >>> surface = RecordingSurface(confirm_answers=deque([True]))
        >>> await surface.confirm("Delete?", "Confirm")
        True
    """

    confirm_answers: Deque[bool] = field(default_factory=deque)
    cascade_answers: Deque[Optional[Dict[str, bool]]] = field(default_factory=deque)
    default_confirm: bool = True
    cascade_gate: Optional[asyncio.Event] = None

    tables: Dict[str, Table] = field(default_factory=dict)
    cells: Dict[Tuple[str, str, str], str] = field(default_factory=dict)
    editors: List[Tuple[str, Any, str, str, Optional[List[Option]]]] = field(default_factory=list)
    alerts: List[Tuple[str, str]] = field(default_factory=list)
    confirms: List[Tuple[str, str]] = field(default_factory=list)
    cascade_prompts: List[Tuple[str, Dict[str, List[str]]]] = field(default_factory=list)

    def render_table(self, table: Table) -> None:
        self.tables[table.view] = table
        for row in table.rows:
            for column, text in row.cells.items():
                self.cells[(table.view, str(row.record_id), column)] = text

    def render_cell(self, view: str, record_id: Any, field_name: str, text: str) -> None:
        self.cells[(view, str(record_id), field_name)] = text

    def open_editor(
        self,
        view: str,
        record_id: Any,
        field_name: str,
        value: str,
        options: Optional[Sequence[Option]] = None,
    ) -> None:
        self.editors.append(
            (view, record_id, field_name, value, list(options) if options is not None else None)
        )

    async def alert(self, message: str, title: str) -> None:
        logger.debug("Alert", extra={"title": title, "alert_message": message})
        self.alerts.append((title, message))

    async def confirm(self, message: str, title: str) -> bool:
        self.confirms.append((title, message))
        if self.confirm_answers:
            return self.confirm_answers.popleft()
        return self.default_confirm

    async def choose_cascade(
        self,
        message: str,
        choices: Dict[str, List[str]],
    ) -> Optional[Dict[str, bool]]:
        self.cascade_prompts.append((message, choices))
        if self.cascade_gate is not None:
            await self.cascade_gate.wait()
        if self.cascade_answers:
            return self.cascade_answers.popleft()
        return {kind: False for kind in choices}

    def cell(self, view: str, record_id: Any, field_name: str) -> Optional[str]:
        return self.cells.get((view, str(record_id), field_name))
