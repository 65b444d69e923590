import json
import re
from typing import Any, Dict, Iterable, List, Optional

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def normalize_text(text: str) -> str:
    """Purpose: Normalize free-form text for stable keyword matching.
    Inputs/Outputs: Input is a raw string; output is lowercase text where every run of
        non-alphanumeric characters is collapsed to a single space.
    Side Effects / State: None; pure function.
    Dependencies: Uses regex; called by intent extraction, matching, and colour checks.
    Failure Modes: Returns an empty string when input is falsy.
    If Removed: Keyword tables and direct-mention scoring stop matching punctuation
        variants ("smart-casual", "let's go").
    Testing Notes: "Smart-Casual!!" -> "smart casual".
    """
    # Lowercase and collapse punctuation/whitespace runs.
    if not text:
        return ""
    return _NON_ALNUM_RE.sub(" ", str(text).lower()).strip()


def tokenize(text: str, min_length: int = 2) -> List[str]:
    """Purpose: Split text into lowercase alphanumeric tokens.
    Inputs/Outputs: Input is raw text and a minimum length; output is a token list.
    Side Effects / State: None.
    Dependencies: Uses normalize_text.
    Failure Modes: Returns an empty list for empty input.
    If Removed: Keyword scoring and synonym lookups lose their token source.
    Testing Notes: "a red T-shirt" -> ["red", "shirt"] (single characters dropped).
    """
    # Drop tokens shorter than min_length to keep noise out of scoring.
    return [token for token in normalize_text(text).split(" ") if len(token) >= min_length]


def has_any_term(normalized: str, terms: Iterable[str]) -> bool:
    """Purpose: Check normalized text for any whole-word term in a term list.
    Inputs/Outputs: Inputs: normalized (str), terms (iterable[str]). Outputs: bool.
    Side Effects / State: None.
    Dependencies: None.
    Failure Modes: Returns False for empty inputs or empty term lists.
    If Removed: Confirmation and vibe detection match inside longer words ("no" in "know").
    Testing Notes: "yes please" matches {"yes"}; "yesterday" does not.
    """
    # Match full terms against a padded normalized string to avoid substrings.
    if not normalized or not terms:
        return False
    padded = f" {normalized} "
    for term in terms:
        if not term:
            continue
        if f" {term} " in padded:
            return True
    return False


def extract_json_block(text: str) -> Optional[str]:
    """Purpose: Extract the first JSON object block from an arbitrary string.
    Inputs/Outputs: Input is a raw string; output is JSON substring or None.
    Side Effects / State: None; pure function.
    Dependencies: None beyond built-ins; used by safe_json_loads.
    Failure Modes: Returns None if braces are missing or inverted.
    If Removed: Model outputs wrapped in prose or code fences cannot be parsed.
    Testing Notes: Provide strings with extra text before/after JSON and ensure extraction.
    """
    # Locate the outermost JSON braces to extract a parseable block.
    if not text:
        return None
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return text[start : end + 1]


def safe_json_loads(text: str) -> Optional[Dict[str, Any]]:
    """Purpose: Parse a JSON object from a model output string safely.
    Inputs/Outputs: Input is raw text; output is a dict or None if parsing fails.
    Side Effects / State: None; pure function.
    Dependencies: Uses extract_json_block and json.loads; called by semantic matching.
    Failure Modes: Returns None on JSONDecodeError, missing block, or non-object JSON.
    If Removed: Semantic matching crashes on malformed model output.
    Testing Notes: Validate valid JSON parses and malformed JSON returns None.
    """
    # Parse only the extracted JSON block to avoid non-JSON prefixes/suffixes.
    block = extract_json_block(text)
    if not block:
        return None
    try:
        data = json.loads(block)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def coerce_int_list(values: Any) -> List[int]:
    """Convert a loosely typed list (strings, floats, ints) into integers, skipping junk."""
    if not isinstance(values, (list, tuple)):
        return []
    result: List[int] = []
    for value in values:
        if isinstance(value, bool):
            continue
        try:
            number = float(value)
        except (TypeError, ValueError):
            continue
        if number != number or number in (float("inf"), float("-inf")):
            continue
        result.append(int(number))
    return result
