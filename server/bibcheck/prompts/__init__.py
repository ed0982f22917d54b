from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from string import Template

_PROMPTS_DIR = Path(__file__).resolve().parent
_SUFFIX = ".txt"


def prompt_path(name: str) -> Path:
    return _PROMPTS_DIR / (name if name.endswith(_SUFFIX) else name + _SUFFIX)


def available_prompts() -> list[str]:
    return sorted(path.stem for path in _PROMPTS_DIR.glob("*" + _SUFFIX))


@lru_cache(maxsize=None)
def get_prompt(name: str) -> str:
    path = prompt_path(name)
    if not path.is_file():
        raise FileNotFoundError(f"No prompt named {name!r} in {_PROMPTS_DIR}")
    return path.read_text(encoding="utf-8").strip()


def render_prompt(name: str, **values: object) -> str:
    """Fill the `$placeholders` of prompt `name`. Every placeholder must be supplied."""
    template = Template(get_prompt(name))
    if not values:
        return template.template
    try:
        return template.substitute({key: "" if value is None else str(value) for key, value in values.items()})
    except KeyError as exc:
        raise KeyError(f"Prompt {name!r} needs a value for ${exc.args[0]}") from exc
