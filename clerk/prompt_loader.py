from __future__ import annotations

from pathlib import Path
from typing import Dict


def load_prompt(prompt_path: Path) -> str:
    """Purpose: Load a prompt file as UTF-8 text and strip BOM if present.
    Inputs/Outputs: Input is a Path to the prompt file; output is the decoded string.
    Side Effects / State: None; pure function reading the filesystem.
    Dependencies: Uses Path.read_text/read_bytes; used by render_prompt.
    Failure Modes: UnicodeDecodeError triggers a fallback decode with errors ignored,
        which can drop invalid bytes. A missing file raises FileNotFoundError.
    If Removed: The Clerk persona and semantic-match prompts cannot be built.
    Testing Notes: Validate BOM-stripping and fallback decoding on non-UTF8 files.
    """
    # Read as UTF-8 and fall back to a tolerant decode if needed.
    try:
        return prompt_path.read_text(encoding="utf-8").lstrip("\ufeff")
    except UnicodeDecodeError:
        raw = prompt_path.read_bytes()
        text = raw.decode("utf-8", errors="ignore")
        return text.lstrip("\ufeff")


def render_prompt(prompt_path: Path, values: Dict[str, str]) -> str:
    """Purpose: Load a template and substitute <<KEY>> placeholders.
    Inputs/Outputs: Inputs are the template path and a KEY -> text mapping; output is
        the rendered prompt.
    Side Effects / State: Reads the template file.
    Dependencies: Uses load_prompt.
    Failure Modes: Unknown placeholders are left untouched.
    If Removed: Callers must hand-roll placeholder replacement.
    Testing Notes: "<<QUERY>>" with {"QUERY": "boots"} renders "boots".
    """
    # Plain replacement keeps JSON braces in templates intact.
    text = load_prompt(prompt_path)
    for key, value in values.items():
        text = text.replace(f"<<{key}>>", value)
    return text.strip()
