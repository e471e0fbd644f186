"""
Inline assistant notes.

Note-style responses (explanations, examples, hints, open-answer
feedback) are shown inline and never stored as artifacts. Whatever
payload shape the generator returned is flattened into one
``assistant_note`` here.
"""

from __future__ import annotations

from typing import Any

from studyflow.generation.contracts import (
    AssistantNotePayload,
    CoursePayload,
    FlashcardsPayload,
    MethodPackPayload,
    QuizPayload,
    SlidesPayload,
)

AnyPublicPayload = (
    CoursePayload | QuizPayload | FlashcardsPayload | SlidesPayload | MethodPackPayload | AssistantNotePayload
)


def _section(title: str | None, content: str) -> str:
    content = (content or "").strip()
    if title:
        return f"**{title}**\n{content}" if content else f"**{title}**"
    return content


def note_sections(payload: AnyPublicPayload) -> tuple[str | None, list[str]]:
    """
    Return (title, text sections) for any public payload kind.

    Raises:
        TypeError: Unknown payload type
    """
    if isinstance(payload, AssistantNotePayload):
        return payload.title, [payload.content]
    if isinstance(payload, MethodPackPayload):
        blocks = sorted(payload.blocks, key=lambda b: b.order)
        return (blocks[0].title if blocks else None), [_section(b.title, b.content) for b in blocks]
    if isinstance(payload, CoursePayload):
        sections = [
            _section(lesson.title, lesson.content)
            for module in payload.modules
            for lesson in module.lessons
        ]
        return payload.title or payload.modules[0].title, sections
    if isinstance(payload, SlidesPayload):
        return payload.slides[0].title or None, [_section(s.title, s.content) for s in payload.slides]
    if isinstance(payload, FlashcardsPayload):
        return None, [_section(card.front, card.back) for card in payload.cards]
    if isinstance(payload, QuizPayload):
        return None, [_section(None, q.explanation or q.text) for q in payload.questions]
    raise TypeError(f"Unhandled payload type: {type(payload).__name__}")


def to_assistant_note(
    payload: AnyPublicPayload,
    source_refs: list[str] | None = None,
    default_title: str = "Note",
) -> AssistantNotePayload:
    """Repackage a payload as an inline note: a title plus concatenated section text."""
    if isinstance(payload, AssistantNotePayload):
        if source_refs and not payload.source_refs:
            return payload.model_copy(update={"source_refs": list(source_refs)})
        return payload
    title, sections = note_sections(payload)
    return AssistantNotePayload(
        kind="assistant_note",
        title=title or default_title,
        content="\n\n".join(s for s in sections if s),
        source_refs=list(source_refs or []),
    )


def note_text(payload: AnyPublicPayload) -> str:
    """Plain text of a payload, used for grading feedback."""
    _, sections = note_sections(payload)
    return "\n\n".join(s for s in sections if s)


def dump_note(note: AssistantNotePayload) -> dict[str, Any]:
    return note.model_dump(exclude_none=True)
