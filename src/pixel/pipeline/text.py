"""Reply text helpers for display versus speech output."""

from __future__ import annotations

import re
from dataclasses import dataclass

EMOJI_RE = re.compile(
    "["
    "\U0001f600-\U0001f64f"
    "\U0001f300-\U0001f5ff"
    "\U0001f680-\U0001f6ff"
    "\U0001f1e0-\U0001f1ff"
    "\u2600-\u26ff"
    "\u2700-\u27bf"
    "\U0001f900-\U0001f9ff"
    "\U0001f018-\U0001f270"
    "\u238c-\u2454"
    "\u20d0-\u20ff"
    "\ufe0f"
    "]"
)
WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class ProcessedText:
    display: str
    speech: str


def strip_emojis(text: str) -> str:
    """Remove emoji for text-to-speech and collapse the whitespace they leave."""
    return WHITESPACE_RE.sub(" ", EMOJI_RE.sub("", text)).strip()


def process_reply_text(text: str) -> ProcessedText:
    return ProcessedText(display=text, speech=strip_emojis(text))
