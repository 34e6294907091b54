"""Tact API package. Importing it pulls vendor keys and knobs from a local env file."""

import os
from pathlib import Path
from typing import Dict, Optional

ENV_FILE_VAR = "TACT_ENV_FILE"


def parse_env_text(text: str) -> Dict[str, str]:
    """KEY=value pairs from dotenv-style text; comments, blanks and ``export`` prefixes allowed."""
    pairs: Dict[str, str] = {}
    for raw in text.splitlines():
        entry = raw.strip()
        if entry.startswith("export "):
            entry = entry[len("export "):].lstrip()
        if not entry or entry.startswith("#") or "=" not in entry:
            continue
        name, _, value = entry.partition("=")
        name, value = name.strip(), value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        if name:
            pairs[name] = value
    return pairs


def load_env_file(path: Optional[Path] = None) -> int:
    """Copy unset variables from the env file into os.environ; returns how many were set."""
    env_path = path or Path(os.getenv(ENV_FILE_VAR, ".env"))
    try:
        text = env_path.read_text(encoding="utf-8")
    except OSError:
        return 0
    applied = 0
    for name, value in parse_env_text(text).items():
        if name not in os.environ:
            os.environ[name] = value
            applied += 1
    return applied


# Tests must never pick up real vendor keys
if not os.getenv("PYTEST_CURRENT_TEST"):
    load_env_file()
