"""
Interactive view state machine.

Views: Menu, SessionPicker, Config, Quiz, Results. Menu is the initial view
and every other view returns to it with Back. The controller holds no
rendering or terminal code; it reacts to input events and pipeline events and
exposes plain state for the renderer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Protocol

from loguru import logger

from config import Settings, save_settings
from learnchain.concepts.extractor import ConceptExtractor
from learnchain.concepts.models import Concept
from learnchain.errors import ConfigError, CredentialMissing, LearnchainError
from learnchain.generation.models import (
    JobState,
    PipelineEvent,
    PipelineEventKind,
    Quiz,
    QuizJob,
    option_label,
)
from learnchain.quiz.store import Answer as RecordedAnswer
from learnchain.quiz.store import QuizStore
from learnchain.sessions.discovery import SessionFile
from learnchain.sessions.models import Session
from learnchain.views import inputs
from learnchain.views.config_form import ConfigForm

MENU_OPTIONS = ("Pick session", "Start quiz", "View results", "Configure")
SPINNER_FRAMES = ("-", "\\", "|", "/")

NOTHING_TO_REVIEW = "Nothing to review in this session."
NO_SESSION = "Pick a session first."
NO_OPTIONS = "No answer options available for this question."


class ViewName(str, Enum):
    MENU = "menu"
    SESSION_PICKER = "session_picker"
    CONFIG = "config"
    QUIZ = "quiz"
    RESULTS = "results"


class PipelineHandle(Protocol):
    """The part of the pipeline the controller drives."""

    def submit_many(self, concepts: list[Concept]) -> list[QuizJob]: ...

    def cancel_all(self) -> int: ...

    def reset(self) -> None: ...

    @property
    def active_count(self) -> int: ...


@dataclass(frozen=True)
class ResultRow:
    concept: Concept
    quiz: Quiz
    answer: RecordedAnswer | None


class ViewController:
    """Finite state machine over the interactive views."""

    def __init__(
        self,
        pipeline: PipelineHandle,
        store: QuizStore,
        settings: Settings,
        discover: Callable[[], list[SessionFile]],
        load: Callable[[Path], Session],
        save: Callable[[dict], Settings] = save_settings,
        on_settings_saved: Callable[[Settings], None] | None = None,
    ):
        self.pipeline = pipeline
        self.store = store
        self.settings = settings
        self._discover = discover
        self._load = load
        self._save = save
        self._on_settings_saved = on_settings_saved

        self.view = ViewName.MENU
        self.status: str | None = None
        self.menu_cursor = 0

        self.session: Session | None = None
        self.concepts: list[Concept] = []

        self.session_files: list[SessionFile] = []
        self.picker_cursor = 0

        self.question_index = 0
        self.option_cursor = 0
        self.feedback: str | None = None
        self.quiz_message: str | None = None
        self.failures: dict[str, str] = {}

        self.config_form: ConfigForm | None = None
        self.spinner_index = 0

    # ========================================
    # Dispatch
    # ========================================

    def handle(self, event: inputs.InputEvent) -> None:
        """Apply one input event to the current view."""
        handler = {
            ViewName.MENU: self._handle_menu,
            ViewName.SESSION_PICKER: self._handle_picker,
            ViewName.CONFIG: self._handle_config,
            ViewName.QUIZ: self._handle_quiz,
            ViewName.RESULTS: self._handle_results,
        }[self.view]
        handler(event)

    def on_pipeline_event(self, event: PipelineEvent) -> None:
        """React to a job reaching a new state."""
        if event.kind == PipelineEventKind.FAILED:
            self.failures[event.fingerprint] = event.reason or "unknown error"
            concept = self._concept(event.fingerprint)
            title = concept.title if concept else event.fingerprint
            self.status = f"Generation failed for '{title}': {event.reason}"
        elif event.kind == PipelineEventKind.SUCCEEDED:
            self.failures.pop(event.fingerprint, None)
            if self.concepts:
                ready = sum(1 for concept in self.concepts if concept.fingerprint in self.store)
                self.status = f"Quizzes ready: {ready}/{len(self.concepts)}"

    def tick(self) -> str:
        """Advance the spinner and return its frame."""
        self.spinner_index = (self.spinner_index + 1) % len(SPINNER_FRAMES)
        return SPINNER_FRAMES[self.spinner_index]

    def _go(self, view: ViewName) -> None:
        logger.debug("View transition {} -> {}", self.view.value, view.value)
        self.view = view

    def _back_to_menu(self) -> None:
        self._go(ViewName.MENU)

    # ========================================
    # Menu
    # ========================================

    def _handle_menu(self, event: inputs.InputEvent) -> None:
        if isinstance(event, inputs.Select):
            if 0 <= event.index < len(MENU_OPTIONS):
                self.menu_cursor = event.index
                self._activate_menu(event.index)
        elif isinstance(event, inputs.Confirm):
            self._activate_menu(self.menu_cursor)
        elif isinstance(event, inputs.Next):
            self.menu_cursor = (self.menu_cursor + 1) % len(MENU_OPTIONS)
        elif isinstance(event, inputs.Previous):
            self.menu_cursor = (self.menu_cursor - 1) % len(MENU_OPTIONS)

    def _activate_menu(self, index: int) -> None:
        self.status = None
        if index == 0:
            self.enter_session_picker()
        elif index == 1:
            self.enter_quiz()
        elif index == 2:
            self._go(ViewName.RESULTS)
        elif index == 3:
            self.config_form = ConfigForm(self.settings)
            self._go(ViewName.CONFIG)

    # ========================================
    # Session picker
    # ========================================

    def enter_session_picker(self) -> None:
        self.session_files = self._discover()
        self.picker_cursor = 0
        if not self.session_files:
            self.status = "No session logs found. Enter a path to a .jsonl log."
        self._go(ViewName.SESSION_PICKER)

    def _handle_picker(self, event: inputs.InputEvent) -> None:
        if isinstance(event, inputs.Back):
            self._back_to_menu()
        elif isinstance(event, inputs.Select):
            if 0 <= event.index < len(self.session_files):
                self.picker_cursor = event.index
                self.load_session(self.session_files[event.index].path)
        elif isinstance(event, inputs.Confirm):
            if self.session_files:
                self.load_session(self.session_files[self.picker_cursor].path)
        elif isinstance(event, inputs.Next) and self.session_files:
            self.picker_cursor = (self.picker_cursor + 1) % len(self.session_files)
        elif isinstance(event, inputs.Previous) and self.session_files:
            self.picker_cursor = (self.picker_cursor - 1) % len(self.session_files)
        elif isinstance(event, inputs.Edit) and event.text.strip():
            self.load_session(Path(event.text.strip()).expanduser())

    def load_session(self, path: Path) -> bool:
        """
        Load, normalize and extract a session, replacing the current one.

        Errors leave the picker open with a status message.
        """
        try:
            session = self._load(path)
            concepts = ConceptExtractor.from_settings(self.settings).extract(session)
        except LearnchainError as e:
            logger.warning("Could not load {}: {}", path, e)
            self.status = f"Could not load {path.name}: {e}"
            return False

        self.pipeline.reset()
        self.session = session
        self.concepts = concepts
        self.failures = {}
        self.question_index = 0
        self._reset_question_state()
        self.status = (
            f"Loaded {len(session.events)} events and {len(concepts)} concepts "
            f"from {session.tool_origin.label} session {session.id}."
        )
        logger.info(self.status)
        self._back_to_menu()
        return True

    # ========================================
    # Quiz
    # ========================================

    def enter_quiz(self) -> None:
        """Enter the quiz view, submitting concepts that have no quiz yet."""
        if self.session is None:
            self.status = NO_SESSION
            return

        self.quiz_message = None
        if not self.concepts:
            self.quiz_message = NOTHING_TO_REVIEW
            self._go(ViewName.QUIZ)
            return

        pending = [concept for concept in self.concepts if concept.fingerprint not in self.store]
        if pending:
            try:
                self.pipeline.submit_many(pending)
            except CredentialMissing as e:
                self.status = str(e)
                return
            for concept in pending:
                self.failures.pop(concept.fingerprint, None)
        self.question_index = min(self.question_index, len(self.concepts) - 1)
        self._go(ViewName.QUIZ)

    def leave_quiz(self) -> None:
        if self.pipeline.active_count:
            cancelled = self.pipeline.cancel_all()
            self.status = f"Cancelled {cancelled} pending quiz request(s)."
        self._reset_question_state()
        self._back_to_menu()

    @property
    def current_concept(self) -> Concept | None:
        if not self.concepts:
            return None
        return self.concepts[self.question_index]

    @property
    def current_quiz(self) -> Quiz | None:
        concept = self.current_concept
        return self.store.get(concept.fingerprint) if concept else None

    @property
    def waiting(self) -> bool:
        """True while the current question is still being generated."""
        concept = self.current_concept
        return (
            self.view == ViewName.QUIZ
            and concept is not None
            and concept.fingerprint not in self.failures
            and self.current_quiz is None
            and self.pipeline.active_count > 0
        )

    def _handle_quiz(self, event: inputs.InputEvent) -> None:
        if isinstance(event, inputs.Back):
            self.leave_quiz()
            return
        if not self.concepts:
            return

        if isinstance(event, inputs.Next):
            self.question_index = (self.question_index + 1) % len(self.concepts)
            self._reset_question_state()
        elif isinstance(event, inputs.Previous):
            self.question_index = (self.question_index - 1) % len(self.concepts)
            self._reset_question_state()
        elif isinstance(event, inputs.Select):
            quiz = self.current_quiz
            if quiz and 0 <= event.index < len(quiz.choices):
                self.option_cursor = event.index
        elif isinstance(event, inputs.Confirm):
            self.answer(self.option_cursor)
        elif isinstance(event, inputs.Answer):
            self.answer(event.choice)

    def answer(self, choice: int) -> RecordedAnswer | None:
        quiz = self.current_quiz
        if quiz is None:
            self.feedback = NO_OPTIONS
            return None
        if not 0 <= choice < len(quiz.choices):
            self.feedback = f"Choose an option between A and {option_label(len(quiz.choices) - 1)}."
            return None

        self.option_cursor = choice
        recorded = self.store.record_answer(quiz.concept_fingerprint, choice)
        if recorded.is_correct:
            self.feedback = f"Correct! Option {quiz.correct_label} is the right answer."
        else:
            self.feedback = "Not quite. Try another option."
        return recorded

    def job_state(self, concept: Concept) -> str:
        if concept.fingerprint in self.store:
            return JobState.SUCCEEDED.value
        if concept.fingerprint in self.failures:
            return JobState.FAILED.value
        return "pending"

    def _reset_question_state(self) -> None:
        self.option_cursor = 0
        self.feedback = None

    def _concept(self, fingerprint: str) -> Concept | None:
        return next((concept for concept in self.concepts if concept.fingerprint == fingerprint), None)

    # ========================================
    # Results
    # ========================================

    def result_rows(self) -> list[ResultRow]:
        rows = []
        for concept in self.concepts:
            quiz = self.store.get(concept.fingerprint)
            if quiz is not None:
                rows.append(ResultRow(concept, quiz, self.store.answer(concept.fingerprint)))
        return rows

    def _handle_results(self, event: inputs.InputEvent) -> None:
        if isinstance(event, (inputs.Back, inputs.Confirm)):
            self._back_to_menu()

    # ========================================
    # Config
    # ========================================

    def _handle_config(self, event: inputs.InputEvent) -> None:
        form = self.config_form
        if form is None or isinstance(event, inputs.Back):
            self.config_form = None
            self._back_to_menu()
            return

        if isinstance(event, inputs.Select):
            form.focus(event.index)
        elif isinstance(event, inputs.Next):
            form.move(1)
        elif isinstance(event, inputs.Previous):
            form.move(-1)
        elif isinstance(event, inputs.Adjust):
            form.adjust(event.delta)
        elif isinstance(event, inputs.Edit):
            error = form.edit(event.text)
            if error:
                self.status = error
        elif isinstance(event, inputs.Confirm):
            self._save_config(form)

    def _save_config(self, form: ConfigForm) -> None:
        changes = form.changes()
        if not changes:
            self.status = "No changes to save."
            return
        try:
            self.settings = self._save(changes)
        except ConfigError as e:
            logger.error("Saving configuration failed: {}", e)
            self.status = f"Failed to save configuration: {e}"
            return

        logger.info("Saved configuration: {}", ", ".join(sorted(changes)))
        self.status = "Configuration saved."
        if self._on_settings_saved is not None:
            self._on_settings_saved(self.settings)
        self.config_form = ConfigForm(self.settings, cursor=form.cursor)
