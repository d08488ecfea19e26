"""
Interactive hub: the terminal loop around ViewController.

Keys are parsed into input events; pipeline events are drained from the
background pipeline before every redraw.
"""

from __future__ import annotations

import time

from loguru import logger
from rich.console import Console
from rich.live import Live
from rich.prompt import Prompt
from rich.text import Text

from config import Settings, get_settings
from learnchain.generation.background import BackgroundPipeline
from learnchain.generation.client import QuizGenerationClient
from learnchain.quiz.store import QuizStore
from learnchain.sessions.discovery import discover_from_settings
from learnchain.sessions.loader import load_session
from learnchain.views import inputs
from learnchain.views.controller import ViewController, ViewName
from learnchain.views.render import render

console = Console()

QUIT = "quit"
PROMPT_EDIT = "prompt-edit"

# Redraw interval while waiting on generation
TICK_SECONDS = 0.12


def parse_command(controller: ViewController, raw: str) -> inputs.InputEvent | str | None:
    """
    Map a line of keyboard input to an input event.

    Returns QUIT to leave the hub, PROMPT_EDIT when the hub should ask for a
    value, or None for unknown input.
    """
    text = raw.strip()
    key = text.lower()
    view = controller.view

    if key == "":
        return inputs.Confirm()
    if key.isdigit():
        return inputs.Select(int(key) - 1)

    if view == ViewName.MENU:
        if key == "q":
            return QUIT
        return {"n": inputs.Next(), "p": inputs.Previous()}.get(key)

    if view == ViewName.QUIZ:
        if key in ("q", "m"):
            return inputs.Back()
        if key in ("n", "p"):
            return inputs.Next() if key == "n" else inputs.Previous()
        quiz = controller.current_quiz
        if len(key) == 1 and key.isalpha() and quiz is not None:
            index = ord(key) - ord("a")
            if index < len(quiz.choices):
                return inputs.Answer(index)
        return None

    if key in ("b", "q"):
        return inputs.Back()
    if key in ("n", "p"):
        return inputs.Next() if key == "n" else inputs.Previous()

    if view == ViewName.CONFIG:
        if key in ("+", "-"):
            return inputs.Adjust(1 if key == "+" else -1)
        if key == "s":
            return inputs.Confirm()
        if key == "e":
            return PROMPT_EDIT
        if key.startswith("e "):
            return inputs.Edit(text[2:])
        return None

    if view == ViewName.SESSION_PICKER:
        return inputs.Edit(text)

    return None


def run_hub(settings: Settings | None = None) -> None:
    """Run the interactive hub until the user quits."""
    settings = settings or get_settings()
    store = QuizStore()
    client = QuizGenerationClient.from_settings(settings)
    background = BackgroundPipeline(
        client,
        store=store,
        choice_count=settings.choices_per_question,
        **settings.get_pipeline_config(),
    )

    def discover():
        return discover_from_settings(controller.settings)

    def apply_settings(updated: Settings) -> None:
        client.api_key = updated.openai_api_key
        client.model = updated.openai_model

    controller = ViewController(
        pipeline=background,
        store=store,
        settings=settings,
        discover=discover,
        load=load_session,
        on_settings_saved=apply_settings,
    )

    background.start()
    try:
        while True:
            _drain(background, controller)
            if controller.waiting:
                _wait_for_generation(background, controller)

            console.clear()
            console.print(render(controller))

            raw = Prompt.ask("[cyan]>_[/cyan]", default="", show_default=False)
            command = parse_command(controller, raw)
            if command == QUIT:
                break
            if command == PROMPT_EDIT:
                focused = controller.config_form.focused if controller.config_form else None
                secret = focused is not None and focused.kind == "secret"
                command = inputs.Edit(Prompt.ask("New value", password=secret))
            if command is None:
                controller.status = f"Unknown command: {raw.strip()}"
                continue
            controller.handle(command)
    except KeyboardInterrupt:
        console.print("\n[dim]Interrupted[/dim]")
    finally:
        background.stop()
        logger.debug("Hub closed")


def _drain(background: BackgroundPipeline, controller: ViewController) -> None:
    for event in background.drain_events():
        controller.on_pipeline_event(event)


def _wait_for_generation(background: BackgroundPipeline, controller: ViewController) -> None:
    """Spin until the current question is ready; Ctrl+C leaves the quiz."""
    try:
        with Live(console=console, refresh_per_second=10, transient=True) as live:
            while controller.waiting:
                ready = sum(1 for concept in controller.concepts if concept.fingerprint in controller.store)
                live.update(
                    Text(
                        f"{controller.tick()} Generating quiz questions "
                        f"({ready}/{len(controller.concepts)} ready)",
                        style="cyan",
                    )
                )
                time.sleep(TICK_SECONDS)
                _drain(background, controller)
    except KeyboardInterrupt:
        controller.handle(inputs.Back())
