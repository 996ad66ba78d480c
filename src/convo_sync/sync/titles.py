"""Classification of user messages for session title derivation.

A session's title is its first genuine user prompt.  Many ``user`` records
are not typed by a person at all: slash-command echoes, IDE context
injections, hook output, tool results and keep-alive pings.  Those are
recognised here by structural markers only; the text itself is never
interpreted.
"""

from __future__ import annotations

from typing import Any, Iterable

DEFAULT_INJECTED_MARKERS: tuple[str, ...] = (
    "<command-name>",
    "<command-message>",
    "<command-args>",
    "<local-command-stdout>",
    "<local-command-stderr>",
    "<local-command-caveat>",
    "<ide_opened_file>",
    "<ide_selection>",
    "<ide_diagnostics>",
    "<system-reminder>",
    "<user-prompt-submit-hook>",
    "<tool_result>",
    "<bash-input>",
    "<bash-stdout>",
    "<bash-stderr>",
    "Caveat: The messages below were generated by the user while running local commands",
)

# Synthetic messages that match only as the whole text.
KEEPALIVE_MESSAGES: frozenset[str] = frozenset({"Warmup"})


def message_text(payload: Any) -> str | None:
    """Extract the human-visible text of a message payload.

    Handles ``{"content": "..."}``, ``{"content": [{"type": "text", ...}]}``
    and bare strings.  Returns ``None`` when the payload carries no text
    blocks at all (e.g. only ``tool_result`` blocks).
    """
    content = payload.get("content") if isinstance(payload, dict) else payload
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [
            block.get("text", "")
            for block in content
            if isinstance(block, dict) and block.get("type") == "text"
        ]
        parts = [p for p in parts if isinstance(p, str)]
        if parts:
            return "\n".join(parts)
    return None


def only_tool_results(payload: Any) -> bool:
    """True when the payload content is a non-empty list of tool results."""
    content = payload.get("content") if isinstance(payload, dict) else None
    if not isinstance(content, list) or not content:
        return False
    return all(
        isinstance(block, dict) and block.get("type") == "tool_result"
        for block in content
    )


def is_system_injected(
    raw: dict,
    payload: Any,
    markers: Iterable[str] = DEFAULT_INJECTED_MARKERS,
) -> bool:
    """Decide whether a ``user`` record was produced by the system."""
    if raw.get("isMeta") is True:
        return True
    if only_tool_results(payload):
        return True

    text = message_text(payload)
    if text is None:
        return True
    stripped = text.strip()
    if not stripped:
        return True
    if stripped in KEEPALIVE_MESSAGES:
        return True
    return any(stripped.startswith(marker) for marker in markers)
