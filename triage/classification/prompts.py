"""Prompt text for the classifier."""

from typing import Optional

CLASSIFIER_SYSTEM_PROMPT = """\
You sort short personal notes into exactly one of three containers:
- "calendar": an appointment or event with a definite time (meeting, date, call)
- "todo": a task or action item the user needs to complete
- "note": an idea, piece of information, or anything worth remembering

Respond with a JSON object only, no prose:
{
  "container": "calendar" | "todo" | "note",
  "extractedTime": "ISO-8601 date-time with UTC offset (e.g. 2026-05-02T15:00:00+08:00) if the text mentions one, else null",
  "suggestedPriority": "important" | "normal",
  "summary": "very short reason for the choice, e.g. 'has a meeting time'"
}"""

CONTEXT_HEADER = "Use the following context about the user as soft guidance:"


def build_system_prompt(context: Optional[str] = None) -> str:
    """System prompt, with the memory context appended verbatim when present."""
    if context is None or not context.strip():
        return CLASSIFIER_SYSTEM_PROMPT
    return f"{CLASSIFIER_SYSTEM_PROMPT}\n\n{CONTEXT_HEADER}\n{context}"
