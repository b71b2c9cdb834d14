"""Tiny terminal UI helpers (prompt_toolkit-based).

Kept separate from the pipeline so the review prompt can be tested in
isolation with pipe input.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggest, Suggestion
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.filters import Condition
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.keys import Keys
from prompt_toolkit.styles import Style
from prompt_toolkit.validation import ValidationError, Validator

from .models import ReviewItem


class _PrefixSuggest(AutoSuggest):
    def __init__(self, vocab: Sequence[str]) -> None:
        self._vocab = list(vocab)

    def get_suggestion(self, buffer, document):
        text = document.text
        if not text:
            return None
        lower = text.lower()
        for w in self._vocab:
            if w.lower() == lower:
                return None
        for w in self._vocab:
            if w.lower().startswith(lower):
                return Suggestion(w[len(text) :]) if len(w) > len(text) else None
        return None


class _KnownCategoryValidator(Validator):
    def __init__(self, vocab: Sequence[str]) -> None:
        self._lower = {w.lower() for w in vocab}

    def validate(self, document) -> None:
        text = document.text.strip()
        if text and text.lower() not in self._lower:
            raise ValidationError(message="Choose one of the listed categories")


def select_category(
    categories: Sequence[str],
    *,
    default: str = "",
    message: str = "Category (Enter to accept, Ctrl+C to skip): ",
    session: PromptSession | None = None,
) -> str | None:
    """Prompt the user to choose one of ``categories``.

    ``default`` pre-fills the buffer (typically the machine suggestion); the
    first printable keystroke replaces it wholesale, while Space, Backspace,
    or cursor movement edit it instead. Tab or Enter completes a typed prefix.

    Returns the canonical category name, or ``None`` when the user skips
    (Ctrl+C, or Enter on an empty buffer).
    """

    words = list(categories)
    canonical = {w.lower(): w for w in words}
    completer = WordCompleter(words, ignore_case=True, match_middle=True, sentence=False)

    kb = KeyBindings()
    replace_mode = bool(default)

    def _best_prefix_match(text: str) -> str | None:
        if not text:
            return None
        lower = text.lower()
        for w in words:
            wl = w.lower()
            if wl == lower:
                return None
            if wl.startswith(lower):
                return w
        return None

    def _complete_prefix(b) -> bool:
        s = getattr(b, "suggestion", None)
        suggestion_text = getattr(s, "text", None)
        if not suggestion_text:
            cand = _best_prefix_match(b.document.text)
            if cand:
                suggestion_text = cand[len(b.document.text) :]
        if suggestion_text:
            b.insert_text(suggestion_text)
            return True
        return False

    @kb.add("c-c", eager=True)
    def _(event) -> None:  # pragma: no cover - exercised indirectly
        event.app.exit(result=None)

    @kb.add("tab", eager=True)
    def _(event) -> None:  # pragma: no cover
        nonlocal replace_mode
        replace_mode = False
        b = event.app.current_buffer
        if _complete_prefix(b):
            return
        if b.complete_state is None:
            b.start_completion(select_first=True)
        else:
            b.complete_next()

    @kb.add("enter", eager=True)
    def _(event) -> None:  # pragma: no cover
        b = event.app.current_buffer
        cs = b.complete_state
        if cs is not None and cs.current_completion is not None:
            b.apply_completion(cs.current_completion)
        else:
            _complete_prefix(b)
        b.validate_and_handle()

    @kb.add("backspace", eager=True)
    def _(event) -> None:  # pragma: no cover
        nonlocal replace_mode
        event.app.current_buffer.delete_before_cursor(1)
        replace_mode = False

    for key in ("left", "right", "home", "end", "c-a", "c-e"):

        @kb.add(key, eager=True)
        def _(event, _key: str = key) -> None:  # pragma: no cover
            nonlocal replace_mode
            replace_mode = False
            b = event.app.current_buffer
            if _key == "left":
                b.cursor_left(1)
            elif _key == "right":
                b.cursor_right(1)
            elif _key in ("home", "c-a"):
                b.cursor_position = 0
            else:
                b.cursor_position = len(b.text)

    @kb.add(Keys.Any, filter=Condition(lambda: replace_mode), eager=True)
    def _(event) -> None:  # pragma: no cover
        nonlocal replace_mode
        data = getattr(event, "data", "") or ""
        if not data or not data.isprintable():
            return
        b = event.app.current_buffer
        replace_mode = False
        if data == " ":
            b.insert_text(" ")
            return
        b.text = ""
        b.insert_text(data)

    if session is None:
        sess: PromptSession = PromptSession(key_bindings=kb)
    else:
        sess = PromptSession(
            input=getattr(session, "input", None),
            output=getattr(session, "output", None),
            key_bindings=kb,
        )

    prompt_kwargs: dict[str, Any] = {
        "message": message,
        "completer": completer,
        "default": default or "",
        "key_bindings": kb,
        "auto_suggest": _PrefixSuggest(words),
        "validator": _KnownCategoryValidator(words),
        "validate_while_typing": False,
        "style": Style.from_dict({"auto-suggestion": "fg:#888888"}),
    }
    result = sess.prompt(**prompt_kwargs)
    if result is None:
        return None
    result = result.strip()
    if not result:
        return None
    return canonical.get(result.lower(), result)


def describe_review_item(item: ReviewItem) -> str:
    """One-line summary shown above the category prompt."""

    c = item.candidate
    hint = ""
    if item.category:
        conf = item.confidence.value if item.confidence is not None else "?"
        hint = f"  [suggested: {item.category} ({conf})]"
    return f"#{item.index + 1}  {c.date}  £{c.amount:.2f}  {c.description}{hint}"


__all__ = ["describe_review_item", "select_category"]
