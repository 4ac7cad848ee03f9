"""
Mock LLM responses for offline runs and tests.

Responses are deterministic functions of the prompt, so a mock-mode
pipeline run always produces the same feed. Designed to work with
pydantic-ai's FunctionModel.
"""

import json
import logging
import re
from typing import Any, Dict, List

from pydantic_ai.messages import ModelResponse, TextPart

logger = logging.getLogger(__name__)

# "[3] TSLA | regulation | Tesla recalls ..." lines in the theme prompt
_EVENT_LINE_RE = re.compile(r"^\[(\d+)\]\s*([A-Z.]+|MACRO)\s*\|", re.MULTILINE)
_MAX_THEMES_RE = re.compile(r"at most (\d+) themes", re.IGNORECASE)


def get_mock_response(prompt: str, system_prompt: str = "") -> str:
    """Return a deterministic mock response for a theme or classification prompt."""
    prompt_lower = prompt.lower()

    if "themename" in (prompt_lower + system_prompt.lower()):
        return json.dumps(_mock_themes(prompt))

    if prompt_lower.rstrip().endswith("label:"):
        for label in ("earnings", "guidance", "regulation", "macro"):
            if label in prompt_lower:
                return label
        return "other"

    return "Mock LLM response for testing purposes."


def _mock_themes(prompt: str) -> List[Dict[str, Any]]:
    """Group listed events by ticker, one theme per ticker, capped at the requested count."""
    m = _MAX_THEMES_RE.search(prompt)
    max_themes = int(m.group(1)) if m else 3

    groups: Dict[str, List[int]] = {}
    for match in _EVENT_LINE_RE.finditer(prompt):
        groups.setdefault(match.group(2), []).append(int(match.group(1)))

    themes = []
    for ticker, indices in list(groups.items())[:max_themes]:
        name = "Market Pulse" if ticker == "MACRO" else f"{ticker} in Focus"
        themes.append({
            "themeName": name,
            "eventIndices": indices,
            "hook": f"{name}: what just happened",
            "contextExplanation": f"{len(indices)} related update(s) moved the story forward today.",
            "whyItMatters": "These developments can shift sentiment around your positions.",
        })
    logger.debug(f"Mock theme response: {len(themes)} themes")
    return themes


def get_mock_response_for_function_model(messages: list[Any], info: Any) -> ModelResponse:
    """Adapter for pydantic-ai FunctionModel.

    FunctionModel passes ModelMessage objects. We extract the user prompt
    and system prompt text and delegate to get_mock_response.
    """
    prompt = ""
    system_prompt = ""
    for msg in messages:
        for part in getattr(msg, "parts", []):
            content = getattr(part, "content", None)
            if not isinstance(content, str):
                continue
            part_type = type(part).__name__
            if "User" in part_type:
                prompt = content
            elif "System" in part_type:
                system_prompt = content
    return ModelResponse(parts=[TextPart(content=get_mock_response(prompt, system_prompt))])
