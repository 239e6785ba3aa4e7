# controllers/commands.py
"""Turns raw chat input into one of a closed set of commands.

Keywords are matched case-insensitively and exactly; anything else is ``Text``.
Each command keeps the original text so steps that take free input (site name,
notes) can still use it as typed.
"""
import re
from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class ToggleAI:
    text: str
    enabled: bool


@dataclass(frozen=True)
class ToggleStream:
    text: str
    enabled: bool


@dataclass(frozen=True)
class EndSession:
    text: str


@dataclass(frozen=True)
class NewSession:
    text: str


@dataclass(frozen=True)
class Cancel:
    text: str


@dataclass(frozen=True)
class ListMaterials:
    text: str
    categories: str = ""


@dataclass(frozen=True)
class ListItems:
    text: str


@dataclass(frozen=True)
class All:
    text: str


@dataclass(frozen=True)
class Done:
    text: str


@dataclass(frozen=True)
class Skip:
    text: str


@dataclass(frozen=True)
class Submit:
    text: str


@dataclass(frozen=True)
class Choice:
    text: str
    number: int


@dataclass(frozen=True)
class Text:
    text: str


Command = Union[
    ToggleAI, ToggleStream, EndSession, NewSession, Cancel, ListMaterials,
    ListItems, All, Done, Skip, Submit, Choice, Text,
]

KEYWORDS = {
    "ai on": lambda t: ToggleAI(t, True),
    "ai off": lambda t: ToggleAI(t, False),
    "stream on": lambda t: ToggleStream(t, True),
    "stream off": lambda t: ToggleStream(t, False),
    "end session": EndSession,
    "new session": NewSession,
    "cancel": Cancel,
    "list": ListItems,
    "all": All,
    "done": Done,
    "skip": Skip,
    "submit": Submit,
}

LIST_MATERIALS = re.compile(r"^list materials(?:\s+(?P<rest>.*))?$", re.I | re.S)


def parse_command(raw: str) -> Command:
    text = raw.strip()
    lower = text.lower()
    if lower in KEYWORDS:
        return KEYWORDS[lower](text)
    match = LIST_MATERIALS.match(text)
    if match:
        return ListMaterials(text, (match.group("rest") or "").strip())
    if text.isascii() and text.isdigit():
        return Choice(text, int(text))
    return Text(text)
