"""
Discrete input events understood by the view controller.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Select:
    """Pick the item at `index` (0-based) in the current view."""
    index: int


@dataclass(frozen=True)
class Confirm:
    """Activate the item under the cursor."""


@dataclass(frozen=True)
class Back:
    """Leave the current view."""


@dataclass(frozen=True)
class Answer:
    """Answer the current quiz question with option `choice` (0-based)."""
    choice: int


@dataclass(frozen=True)
class Next:
    pass


@dataclass(frozen=True)
class Previous:
    pass


@dataclass(frozen=True)
class Adjust:
    """Step the focused config value by `delta` steps."""
    delta: int


@dataclass(frozen=True)
class Edit:
    """Replace the focused value (or, in the picker, a path to load)."""
    text: str


InputEvent = Select | Confirm | Back | Answer | Next | Previous | Adjust | Edit
