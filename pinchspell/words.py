"""
Built-in word bank (CET-4 level vocabulary with Chinese hints).
"""
import random
from typing import List, Optional, Sequence

from .types import Word

DEFAULT_WORDS: List[Word] = [
    Word("apple", "苹果", "/ˈæpl/"),
    Word("brave", "勇敢的", "/breɪv/"),
    Word("cat", "猫", "/kæt/"),
    Word("cloud", "云", "/klaʊd/"),
    Word("dream", "梦想", "/driːm/"),
    Word("earth", "地球", "/ɜːθ/"),
    Word("friend", "朋友", "/frend/"),
    Word("garden", "花园", "/ˈɡɑːdn/"),
    Word("happy", "快乐的", "/ˈhæpi/"),
    Word("island", "岛屿", "/ˈaɪlənd/"),
    Word("journey", "旅程", "/ˈdʒɜːni/"),
    Word("light", "光", "/laɪt/"),
    Word("magic", "魔法", "/ˈmædʒɪk/"),
    Word("music", "音乐", "/ˈmjuːzɪk/"),
    Word("ocean", "海洋", "/ˈəʊʃn/"),
    Word("planet", "行星", "/ˈplænɪt/"),
    Word("river", "河流", "/ˈrɪvə(r)/"),
    Word("smile", "微笑", "/smaɪl/"),
    Word("water", "水", "/ˈwɔːtə(r)/"),
    Word("window", "窗户", "/ˈwɪndəʊ/"),
]

MAX_SHUFFLE_ATTEMPTS = 10


class WordBank:
    """Random word source that never serves the same word twice in a row."""

    def __init__(self, words: Optional[Sequence[Word]] = None, rng: Optional[random.Random] = None):
        self.words = list(words or DEFAULT_WORDS)
        if not self.words:
            raise ValueError("Word bank is empty")
        self.rng = rng or random.Random()
        self._last: Optional[Word] = None

    def get_next_word(self) -> Word:
        choices = [w for w in self.words if w != self._last] or self.words
        self._last = self.rng.choice(choices)
        return self._last

    def shuffle_string(self, word: str) -> List[str]:
        return shuffle_string(word, self.rng)


def shuffle_string(word: str, rng: Optional[random.Random] = None) -> List[str]:
    """
    Return the word's letters in a shuffled order.

    When the word has at least two distinct letters the result never spells
    the word itself.
    """
    rng = rng or random.Random()
    letters = list(word)
    if len(set(letters)) < 2:
        return letters

    for _ in range(MAX_SHUFFLE_ATTEMPTS):
        rng.shuffle(letters)
        if "".join(letters) != word:
            return letters

    # unlucky streak: a rotation by one always differs when two letters differ
    letters = list(word)
    return letters[1:] + letters[:1]
