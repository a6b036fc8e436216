# rules.py
from __future__ import annotations

import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Tuple

from .errors import ConfigError

COMMENT = "#"
DEFAULT_RULES_FILE = ".lints"


@dataclass(frozen=True)
class RuleSet:
    """Ordered, duplicate-free lint directives handed to the static-analysis job."""
    rules: Tuple[str, ...] = ()

    @classmethod
    def from_lines(cls, lines: Iterable[str]) -> "RuleSet":
        seen: dict[str, None] = {}
        for raw in lines:
            token = raw.split(COMMENT, 1)[0].strip()
            if token and token not in seen:
                seen[token] = None
        return cls(tuple(seen))

    def __iter__(self) -> Iterator[str]:
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self.rules)

    def __contains__(self, rule: object) -> bool:
        return rule in self.rules

    def render(self) -> str:
        return " ".join(self.rules)

    def argv(self) -> List[str]:
        # "-W clippy::pedantic" is two words on a command line
        out: List[str] = []
        for rule in self.rules:
            out.extend(shlex.split(rule))
        return out


def load_rules(path: str | Path) -> RuleSet:
    """
    Load a rule file: one directive per line, `#` starts a comment.

    Raises ConfigError if the file is missing or unreadable.
    """
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"rule file not found: {p}") from None
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"rule file unreadable: {p}", {"cause": e}) from e
    return RuleSet.from_lines(text.splitlines())
