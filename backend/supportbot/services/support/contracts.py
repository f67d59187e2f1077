from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence

from supportbot.schemas.knowledge import KBCard


@dataclass(frozen=True)
class IntentCandidate:
    card_id: str
    title: str
    domain: str


@dataclass(frozen=True)
class ReformatInput:
    user_question: str
    raw_answer: str
    is_guarded: bool
    is_limited: bool
    is_warm: bool
    lang: str
    ui_path_hint: str


# Returns the id of the card the classifier believes answers the question, or None.
ClassifyIntentFn = Callable[[str, str, Sequence[IntentCandidate]], Awaitable[Optional[str]]]

ReformatFn = Callable[[ReformatInput], Awaitable[str]]

# (guide_id, lang) -> assembled guide text; empty string when the guide is unknown.
GuideContentFn = Callable[[str, str], str]


class CardSource(Protocol):
    def load_cards(self, version: Optional[str] = None) -> List[KBCard]:
        ...
