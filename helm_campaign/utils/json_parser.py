import json
import re
from typing import Any, Dict, List, Union

from helm_campaign.utils.logging import get_logger

LOGGER = get_logger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


def parse_json_safely(text: str) -> Union[Dict[str, Any], List[Any], None]:
    """Parse JSON from text, handling common LLM formatting issues.

    Handles:
    - Markdown code blocks (```json ... ```), anywhere in the text
    - Leading/trailing prose around a single JSON object or array
    - Trailing data after the first complete value

    Args:
        text: The text containing JSON

    Returns:
        Parsed JSON object or None if parsing fails
    """
    if not text:
        return None

    cleaned_text = text.strip()
    fence_match = _FENCE_RE.search(cleaned_text)
    if fence_match:
        cleaned_text = fence_match.group(1).strip()

    try:
        return json.loads(cleaned_text)
    except json.JSONDecodeError as e:
        LOGGER.warning(f"Initial JSON parse failed: {e}, attempting repairs...")

    # Decode the first JSON value starting at the first brace or bracket
    decoder = json.JSONDecoder()
    starts = sorted(pos for pos in (cleaned_text.find("{"), cleaned_text.find("[")) if pos != -1)
    for start in starts:
        try:
            value, _ = decoder.raw_decode(cleaned_text[start:])
            return value
        except json.JSONDecodeError:
            continue

    LOGGER.error("Failed to parse JSON from LLM response", extra={"preview": cleaned_text[:200]})
    return None
