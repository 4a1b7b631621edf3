"""Static substring profanity filter."""
import re
from typing import Iterable, List, Pattern, Tuple

DEFAULT_WORDS = ("spam", "badword1", "badword2")
MASK_CHAR = "*"


class ProfanityFilter:
    """Masks denylisted words with a run of ``*`` of equal length.

    Matching is case-insensitive and applies anywhere in the text, including
    inside longer words. Words are processed in denylist order, so a later
    word never sees spans an earlier one already masked.
    """

    def __init__(self, words: Iterable[str] = DEFAULT_WORDS) -> None:
        self._patterns: List[Tuple[Pattern[str], str]] = [
            (re.compile(re.escape(word), re.IGNORECASE), MASK_CHAR * len(word))
            for word in words
            if word
        ]

    def filter(self, text: str) -> str:
        if not isinstance(text, str):
            return text
        for pattern, mask in self._patterns:
            text = pattern.sub(mask, text)
        return text

    __call__ = filter
