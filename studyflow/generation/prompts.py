"""
Prompt builders for planning, actions, reranking and replanning.

All prompts ask for bare JSON; the structured generator still tolerates
markdown fences and leading prose.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

from studyflow.db.store import ChunkMatch

JSON_ONLY = "IMPORTANT: Respond with valid JSON only, with no markdown fences, comments or explanations."

LANGUAGE_RULE = "Write in the language of the source material."

TOPIC_DISCOVERY_QUERY = "main topics structure key terms definitions concepts"


# =============================================================================
# Plan
# =============================================================================

PLAN_SYSTEM_PROMPT = f"""You are a curriculum architect. Analyze the fragments of study material and build a structured learning plan.

{JSON_ONLY}

Response format:
{{
  "topics": [
    {{
      "id": "topic_1",
      "title": "Topic title",
      "description": "Short description",
      "key_terms": ["term1", "term2"],
      "difficulty": "beginner|intermediate|advanced",
      "estimated_minutes": 30
    }}
  ],
  "roadmap": [
    {{
      "id": "step_1",
      "title": "Step title",
      "description": "What the learner studies",
      "artifact_type": "course|quiz|flashcards|slides|method_pack",
      "status": "available",
      "next_step_id": "step_2"
    }}
  ],
  "assistant_menu_policy": {{
    "context": "learning",
    "items": [
      {{"id": "explain", "label": "Explain term", "action": "explain_term", "enabled": true, "visible": true}},
      {{"id": "example", "label": "Show an example", "action": "give_example", "enabled": true, "visible": true}},
      {{"id": "quiz", "label": "Check my knowledge", "action": "generate_quiz", "enabled": true, "visible": true}}
    ],
    "integrity_rules": [
      {{"rule_id": "no_answers", "description": "Do not reveal answers before the attempt is completed", "condition": "attempt.status != completed", "action": "hide"}}
    ]
  }},
  "diagnostic": {{
    "enabled": true,
    "quiz": {{
      "questions": [
        {{"id": "q1", "text": "Question?", "type": "single_choice",
          "options": [{{"id": "a", "text": "Option A"}}, {{"id": "b", "text": "Option B"}}]}}
      ]
    }},
    "answer_key": [{{"question_id": "q1", "correct_option_ids": ["a"], "points": 1}}]
  }}
}}

Rules:
- Create 3-8 topics grounded in the material
- The roadmap has 4-10 steps in a logical order
- The first roadmap step has status "available", the others "locked"
- next_step_id of the last step is null
- If the material allows it, include a diagnostic quiz of 3-5 questions to assess the starting level
- All ids are unique strings
- {LANGUAGE_RULE}"""


def build_plan_user_prompt(chunks: Sequence[ChunkMatch]) -> str:
    material = "\n\n---\n\n".join(f"[Fragment {i + 1}]\n{c.content}" for i, c in enumerate(chunks))
    return f"Analyze the following study material and create a learning plan:\n\n{material}"


def build_plan_patch_prompt(
    current_roadmap: list[dict[str, Any]],
    checkin: dict[str, Any],
    chunks: Sequence[ChunkMatch],
) -> str:
    """User prompt for a check-in replan, seeded with the current state."""
    fragments = "\n".join(f"[{i + 1}] {c.content[:200]}" for i, c in enumerate(chunks))
    return (
        f"Current roadmap:\n{json.dumps(current_roadmap, indent=2, ensure_ascii=False)}\n\n"
        f"Check-in data:\n{json.dumps(checkin, indent=2, ensure_ascii=False)}\n\n"
        f"Available fragments:\n{fragments}\n\n"
        "Update the roadmap to reflect the learner's progress and difficulties. "
        "Return JSON in the same format as the original plan. "
        "Change only roadmap and, if needed, topics."
    )


# =============================================================================
# Rerank
# =============================================================================


def build_rerank_prompts(
    chunks: Sequence[ChunkMatch],
    task: str,
    target_min: int = 8,
    target_max: int = 12,
    preview_chars: int = 200,
) -> tuple[str, str]:
    """Return (system, user) prompts asking for the indices of the best chunks."""
    system = (
        f"You are a retrieval assistant. From the list of fragments pick the {target_min}-{target_max} "
        f"most relevant for this task: {task}. "
        'Return JSON: {"selected": [0, 3, 5]}, an array of indices.'
    )
    user = "\n".join(
        f"[{i}] id={c.id}: {c.content[:preview_chars]}" for i, c in enumerate(chunks)
    )
    return system, user


# =============================================================================
# Act
# =============================================================================

_NOTE_FORMAT = """public_payload:
{{
  "kind": "assistant_note",
  "title": "{title}",
  "content": "..."
}}"""

ACTION_INSTRUCTIONS: dict[str, str] = {
    "generate_lesson_blocks": """Create a lesson made of text blocks. public_payload:
{
  "kind": "course",
  "modules": [{"id": "m1", "title": "...", "lessons": [{"id": "l1", "title": "...", "content": "...", "type": "text"}]}]
}""",
    "generate_quiz": """Create a quiz. public_payload:
{
  "kind": "quiz",
  "questions": [{"id": "q1", "text": "...", "type": "single_choice", "options": [{"id": "a", "text": "..."}], "explanation": "..."}],
  "time_limit_seconds": 300,
  "shuffle": false
}
private_payload:
{
  "kind": "quiz",
  "answer_key": [{"question_id": "q1", "correct_option_ids": ["a"], "points": 1}],
  "passing_score": 60
}""",
    "generate_flashcards": """Create a flashcard set. public_payload:
{
  "kind": "flashcards",
  "cards": [{"id": "c1", "front": "Term", "back": "Definition", "hint": "Hint"}]
}""",
    "generate_slides": """Create a slide deck. public_payload:
{
  "kind": "slides",
  "slides": [{"id": "s1", "type": "title", "title": "...", "content": "..."}]
}""",
    "generate_method_pack": """Create a study method pack. public_payload:
{
  "kind": "method_pack",
  "blocks": [{"id": "b1", "type": "concept", "title": "...", "content": "...", "order": 0}]
}""",
    "remediate_topic": """Create an additional explanation for a difficult topic. public_payload:
{
  "kind": "course",
  "modules": [{"id": "r1", "title": "Review: ...", "lessons": [{"id": "rl1", "title": "...", "content": "...", "type": "text"}]}]
}""",
    "explain_term": "Explain the given term in plain words. "
    + _NOTE_FORMAT.format(title="Explanation: <term>"),
    "give_example": "Give a practical example. " + _NOTE_FORMAT.format(title="Example: ..."),
    "expand_selection": "Expand the selected passage in more depth. "
    + _NOTE_FORMAT.format(title="In depth: ..."),
    "explain_mistake": "Explain why the learner's answer is wrong and what the right reasoning is. "
    + _NOTE_FORMAT.format(title="Why this is wrong"),
    "explain_correct": "Explain why the correct answer is correct. "
    + _NOTE_FORMAT.format(title="Why this is right"),
    "give_hint": "Give a hint that moves the learner forward without revealing the answer. "
    + _NOTE_FORMAT.format(title="Hint"),
    "grade_open": """Grade the learner's open answer. public_payload:
{
  "kind": "method_pack",
  "blocks": [{"id": "fb1", "type": "feedback", "title": "Feedback", "content": "...", "order": 0}]
}
private_payload:
{
  "kind": "exercise",
  "rubrics": [{"criterion": "...", "max_points": 10, "description": "..."}],
  "sample_answer": "..."
}
Also return score (0-100) in ui_hints.""",
}


def build_act_system_prompt(action_type: str) -> str:
    instruction = ACTION_INSTRUCTIONS.get(action_type, ACTION_INSTRUCTIONS["explain_term"])
    return f"""You are the assistant of a learning platform. Generate study content strictly as JSON.

{JSON_ONLY}

Task: {action_type}

{instruction}

Overall response format:
{{
  "public_payload": {{ ... }},
  "private_payload": null,
  "source_refs": ["chunk_id_1", "chunk_id_2"],
  "ui_hints": {{
    "display_mode": "full|compact|inline",
    "next_actions": ["action1", "action2"],
    "score": null
  }}
}}

Rules:
- All ids are unique strings
- source_refs lists the ids of the fragments you used
- private_payload holds answers and keys ONLY for quiz and exercise; never put them in public_payload
- {LANGUAGE_RULE}
- Content must be detailed and useful"""


def build_act_user_prompt(
    chunks: Sequence[ChunkMatch],
    context: str | None = None,
    target: dict[str, Any] | None = None,
    user_answer: str | None = None,
) -> str:
    target = target or {}
    parts: list[str] = []
    if context:
        parts.append(f"Context: {context}")
    if target.get("term"):
        parts.append(f"Term: {target['term']}")
    if target.get("selected_text"):
        parts.append(f"Selected text: {target['selected_text']}")
    if target.get("topic_id"):
        parts.append(f"Topic: {target['topic_id']}")
    if user_answer:
        parts.append(f"Learner answer:\n{user_answer}")

    parts.append("\nSources:")
    for chunk in chunks:
        parts.append(f"[{chunk.id}]\n{chunk.content}")
    return "\n\n".join(parts)
