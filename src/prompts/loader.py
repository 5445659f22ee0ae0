from __future__ import annotations

from pathlib import Path


def load_prompt(filename: str, **values: str) -> str:
    """Load a prompt text file shipped with the codebase, filling ``{placeholders}``."""

    prompt_dir = Path(__file__).resolve().parent
    path = prompt_dir / filename
    if not path.exists():
        raise RuntimeError(f"Prompt file not found: {filename}")
    text = path.read_text(encoding="utf-8").strip()
    if values:
        text = text.format(**values)
    return text + "\n"
