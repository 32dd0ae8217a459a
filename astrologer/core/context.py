"""Conversation context for the model.

Every session history opens with a fixed priming pair: a ``system-priming``
turn carrying the role instructions and the serialized birth chart, then a
``model-priming`` acknowledgment. Organic turns follow in chronological
order. Once the history grows past ``max_turns`` the oldest organic turns are
dropped for good; the priming pair is never dropped.
"""
from __future__ import annotations

from typing import Any, Dict, List, Sequence

from astrologer.core.models import Speaker, Turn
from astrologer.core.prompt import PRIMING_ACKNOWLEDGEMENT, render_system_prompt


DEFAULT_MAX_TURNS = 22
PRIMING_SPEAKERS = (Speaker.SYSTEM_PRIMING, Speaker.MODEL_PRIMING)


class ContextAssembler:
    def __init__(self, max_turns: int = DEFAULT_MAX_TURNS) -> None:
        if max_turns < len(PRIMING_SPEAKERS) + 1:
            raise ValueError(f"max_turns must be at least 3, got {max_turns}")
        self.max_turns = max_turns

    @property
    def window(self) -> int:
        """Number of organic turns kept after truncation."""
        return self.max_turns - len(PRIMING_SPEAKERS)

    def priming_turns(self, chart_data: Dict[str, Any]) -> List[Turn]:
        return [
            Turn(Speaker.SYSTEM_PRIMING, render_system_prompt(chart_data)),
            Turn(Speaker.MODEL_PRIMING, PRIMING_ACKNOWLEDGEMENT),
        ]

    @staticmethod
    def _check_priming(history: Sequence[Turn]) -> None:
        speakers = tuple(turn.speaker for turn in history[:2])
        if speakers != PRIMING_SPEAKERS:
            raise ValueError(f"history must open with the priming pair, got {speakers}")
        if any(turn.speaker in PRIMING_SPEAKERS for turn in history[2:]):
            raise ValueError("priming turns may only appear at the start of history")

    def trim(self, history: Sequence[Turn]) -> List[Turn]:
        self._check_priming(history)
        if len(history) <= self.max_turns:
            return list(history)
        return [history[0], history[1], *history[-self.window:]]

    def build(self, history: Sequence[Turn]) -> List[Turn]:
        self._check_priming(history)
        return list(history)
