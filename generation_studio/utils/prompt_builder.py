"""
Prompt construction utilities for generation batches.
"""

import json
from typing import List

from ..api.error_handler import PreflightValidationError

MAX_PROMPT_LENGTH = 4000


def sanitize_prompt(prompt: str) -> str:
    """
    Sanitize user input prompt to prevent issues.

    Args:
        prompt: User input prompt

    Returns:
        Sanitized prompt
    """
    # Remove excessive whitespace
    prompt = " ".join(prompt.split())

    # Trim to reasonable length
    if len(prompt) > MAX_PROMPT_LENGTH:
        prompt = prompt[:MAX_PROMPT_LENGTH]

    return prompt.strip()


def compose_prompt(prompt: str, prepend: str = "", append: str = "") -> str:
    """
    Wrap a prompt variant with the batch-wide prefix and suffix.

    Args:
        prompt: Prompt variant
        prepend: Text placed before the variant (optional)
        append: Text placed after the variant (optional)

    Returns:
        Complete prompt string
    """
    parts = [part.strip() for part in (prepend, prompt, append) if part and part.strip()]
    return sanitize_prompt(" ".join(parts))


def parse_prompt_variants(json_text: str) -> List[str]:
    """
    Parse prompt variants pasted as a JSON array of strings.

    Args:
        json_text: e.g. '["a red car", "a blue car"]'

    Returns:
        List of prompt variants

    Raises:
        PreflightValidationError: invalid JSON or not an array of strings
    """
    try:
        parsed = json.loads(json_text)
    except json.JSONDecodeError:
        raise PreflightValidationError("Invalid JSON syntax.")

    if not isinstance(parsed, list) or not all(isinstance(item, str) for item in parsed):
        raise PreflightValidationError("Invalid format: Must be a JSON array of strings.")

    return parsed
