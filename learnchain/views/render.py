"""
Rich rendering for each view and for the one-shot CLI listings.
"""

from __future__ import annotations

from rich import box
from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from learnchain.concepts.models import Concept
from learnchain.generation.models import option_label
from learnchain.sessions.models import EventKind, Session
from learnchain.views.controller import MENU_OPTIONS, ViewController, ViewName

THEME = {
    "primary": "cyan",
    "accent": "magenta",
    "success": "green",
    "warning": "yellow",
    "error": "red",
    "dim": "bright_black",
}

KIND_STYLES = {
    EventKind.PROMPT: "cyan",
    EventKind.RESPONSE: "green",
    EventKind.FILE_EDIT: "magenta",
    EventKind.TOOL_CALL: "bright_black",
}

PREVIEW_CHARS = 90


def render(controller: ViewController) -> RenderableType:
    """Renderable for the controller's current view, with its status line."""
    body = {
        ViewName.MENU: _menu,
        ViewName.SESSION_PICKER: _picker,
        ViewName.CONFIG: _config,
        ViewName.QUIZ: _quiz,
        ViewName.RESULTS: _results,
    }[controller.view](controller)

    parts: list[RenderableType] = [body]
    if controller.status:
        parts.append(Text(controller.status, style=THEME["warning"]))
    parts.append(Text(_help(controller.view), style=THEME["dim"]))
    return Group(*parts)


def _help(view: ViewName) -> str:
    return {
        ViewName.MENU: "number to select, q to quit",
        ViewName.SESSION_PICKER: "number to load, or type a path; b to go back",
        ViewName.CONFIG: "number to focus, + / - to adjust, e to edit, s to save, b to go back",
        ViewName.QUIZ: "letter to answer, n / p for next / previous, q to go back",
        ViewName.RESULTS: "b to go back",
    }[view]


def _menu(controller: ViewController) -> RenderableType:
    text = Text()
    for index, label in enumerate(MENU_OPTIONS):
        marker = ">" if index == controller.menu_cursor else " "
        text.append(f" {marker} [{index + 1}] ", style=THEME["primary"])
        text.append(f"{label}\n")

    if controller.session is not None:
        session = controller.session
        text.append(
            f"\nSession: {session.tool_origin.label} {session.id} "
            f"({len(session.events)} events, {len(controller.concepts)} concepts)",
            style=THEME["dim"],
        )
    return Panel(text, title="learnchain", border_style=THEME["primary"], box=box.ROUNDED)


def _picker(controller: ViewController) -> RenderableType:
    table = Table(box=box.SIMPLE, show_header=True)
    table.add_column("#", justify="right", style=THEME["primary"])
    table.add_column("Modified")
    table.add_column("Tool")
    table.add_column("File")
    table.add_column("Size", justify="right", style=THEME["dim"])

    for index, item in enumerate(controller.session_files):
        style = "bold" if index == controller.picker_cursor else None
        table.add_row(
            str(index + 1),
            item.modified_at.strftime("%Y-%m-%d %H:%M"),
            item.tool_origin.label if item.tool_origin else "?",
            f"{item.path.parent.name}/{item.path.name}",
            f"{item.size // 1024} KB",
            style=style,
        )
    return Panel(table, title="Pick session", border_style=THEME["primary"], box=box.ROUNDED)


def _config(controller: ViewController) -> RenderableType:
    form = controller.config_form
    table = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
    table.add_column("#", style=THEME["primary"])
    table.add_column("Setting")
    table.add_column("Value", style=THEME["success"])

    if form is not None:
        for index, config_field in enumerate(form.fields):
            marker = ">" if index == form.cursor else " "
            changed = "*" if config_field.key in form.changes() else ""
            table.add_row(f"{marker}{index + 1}", config_field.label, form.display(config_field) + changed)
    return Panel(table, title="Configure", border_style=THEME["accent"], box=box.ROUNDED)


def _quiz(controller: ViewController) -> RenderableType:
    if controller.quiz_message:
        return Panel(controller.quiz_message, title="Quiz", border_style=THEME["warning"], box=box.ROUNDED)

    concept = controller.current_concept
    if concept is None:
        return Panel("No concepts loaded.", title="Quiz", box=box.ROUNDED)

    header = f"Question {controller.question_index + 1}/{len(controller.concepts)}: {concept.title}"
    quiz = controller.current_quiz
    if quiz is None:
        reason = controller.failures.get(concept.fingerprint)
        if reason:
            body = Text(f"Generation failed: {reason}", style=THEME["error"])
        else:
            body = Text("Generating question...", style=THEME["dim"])
        return Panel(body, title=header, border_style=THEME["primary"], box=box.ROUNDED)

    text = Text(quiz.question_text + "\n\n", style="bold")
    answer = controller.store.answer(quiz.concept_fingerprint)
    for index, choice in enumerate(quiz.choices):
        style = None
        if answer is not None and answer.chosen_index == index:
            style = THEME["success"] if answer.is_correct else THEME["error"]
        marker = ">" if index == controller.option_cursor else " "
        text.append(f" {marker} {option_label(index)}) {choice}\n", style=style)

    if controller.feedback:
        correct = answer is not None and answer.is_correct
        text.append("\n" + controller.feedback, style=THEME["success"] if correct else THEME["warning"])
        if correct and quiz.explanation:
            text.append("\n" + quiz.explanation, style=THEME["dim"])

    return Panel(text, title=header, border_style=THEME["primary"], box=box.ROUNDED)


def _results(controller: ViewController) -> RenderableType:
    table = Table(title="Results", box=box.ROUNDED)
    table.add_column("Concept", style=THEME["primary"])
    table.add_column("Answered", justify="center")
    table.add_column("Correct", justify="center")

    for row in controller.result_rows():
        answered = row.answer is not None
        table.add_row(
            row.concept.title,
            "yes" if answered else "no",
            ("[green]yes[/green]" if row.answer.is_correct else "[red]no[/red]") if answered else "-",
        )

    score = controller.store.score()
    summary = Text(
        f"Score: {score.correct}/{score.answered} answered correctly "
        f"({score.total} quizzes, {score.percent:.0f}%)",
        style="bold",
    )
    return Group(table, summary)


# =============================================================================
# CLI listings
# =============================================================================


def events_table(session: Session, show_noise: bool = True) -> Table:
    table = Table(
        title=f"{session.tool_origin.label} session {session.id} ({len(session.events)} events)",
        box=box.ROUNDED,
    )
    table.add_column("#", justify="right", style=THEME["dim"])
    table.add_column("Time")
    table.add_column("Kind")
    table.add_column("Payload")

    for event in session.events:
        if event.is_noise and not show_noise:
            continue
        style = THEME["dim"] if event.is_noise else None
        table.add_row(
            str(event.sequence),
            event.occurred_at.strftime("%H:%M:%S") if event.occurred_at else "-",
            Text(event.kind.value, style=KIND_STYLES[event.kind]),
            _preview(event.payload),
            style=style,
        )
    return table


def concepts_table(concepts: list[Concept]) -> Table:
    table = Table(title=f"{len(concepts)} concepts", box=box.ROUNDED)
    table.add_column("Fingerprint", style=THEME["dim"])
    table.add_column("Title", style=THEME["primary"])
    table.add_column("Difficulty")
    table.add_column("Events", justify="right")
    table.add_column("Files")

    for concept in concepts:
        table.add_row(
            concept.fingerprint,
            concept.title,
            concept.difficulty_hint.value,
            str(len(concept.supporting_events)),
            ", ".join(concept.edited_paths) or "-",
        )
    return table


def _preview(text: str) -> str:
    flat = " ".join(text.split())
    if len(flat) <= PREVIEW_CHARS:
        return flat
    return flat[:PREVIEW_CHARS - 3] + "..."
