"""
Word pool and card deck utilities.
"""

import random
from typing import Dict, List, Optional, Sequence, TypeVar, Union

from .constants import COLORS
from .errors import InvalidInput, InvalidWordList
from .models import Card
from .rules import RuleConfig, default_rules

T = TypeVar('T')


def make_rng(seed: Optional[int] = None) -> random.Random:
    """Return a seeded generator, or one backed by system entropy."""
    if seed is not None:
        return random.Random(seed)
    return random.SystemRandom()


def fisher_yates(items: Sequence[T], rng: Optional[random.Random] = None) -> List[T]:
    """
    Return a uniformly random permutation of ``items``.

    Args:
        items: Sequence to permute (left untouched)
        rng: Optional random generator for deterministic shuffling

    Returns:
        Shuffled copy of the items
    """
    rng = rng or make_rng()
    shuffled = list(items)
    rng.shuffle(shuffled)
    return shuffled


def parse_word_pool(raw: Union[str, Sequence[str], None],
                    max_length: int = default_rules.max_word_length) -> List[str]:
    """
    Normalize a word pool given either as newline-separated text or a sequence.

    Blank entries and entries longer than ``max_length`` are dropped, and
    duplicates are removed keeping the first occurrence.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        candidates = raw.split('\n')
    else:
        candidates = list(raw)

    words = []
    seen = set()
    for candidate in candidates:
        if not isinstance(candidate, str):
            raise InvalidWordList(f"Word pool entries must be strings, got {type(candidate).__name__}")
        word = candidate.strip()
        if not word or len(word) > max_length or word in seen:
            continue
        seen.add(word)
        words.append(word)
    return words


def pick_board_words(full_word_list: Union[str, Sequence[str]],
                     rules: Optional[RuleConfig] = None,
                     rng: Optional[random.Random] = None) -> List[str]:
    """
    Pick a fresh set of board words from the full pool.

    Raises:
        InvalidWordList: If the pool holds fewer words than the board needs
    """
    rules = rules or default_rules
    pool = parse_word_pool(full_word_list, rules.max_word_length)
    if len(pool) < rules.board_size:
        raise InvalidWordList(
            f"Word pool has {len(pool)} usable words, need at least {rules.board_size}"
        )
    return fisher_yates(pool, rng)[:rules.board_size]


def build_deck(words: Sequence[str],
               rules: Optional[RuleConfig] = None,
               rng: Optional[random.Random] = None) -> List[Card]:
    """
    Build the board by dealing a shuffled color distribution onto the first words.

    Args:
        words: Candidate words; only the first ``board_size`` are used
        rules: Board composition, defaults to 8 red / 9 blue / 7 neutral / 1 assassin
        rng: Optional random generator

    Returns:
        Unrevealed cards in board order

    Raises:
        InvalidInput: If fewer words than the board size are supplied
    """
    rules = rules or default_rules
    if words is None or isinstance(words, str):
        raise InvalidInput("Words must be a sequence of strings")
    words = list(words)
    if len(words) < rules.board_size:
        raise InvalidInput(f"Need at least {rules.board_size} words, got {len(words)}")

    colors = fisher_yates(rules.color_pool(), rng)
    return [
        Card(word=word, color=color, revealed=False)
        for word, color in zip(words[:rules.board_size], colors)
    ]


def color_counts(cards: Sequence[Card], unrevealed_only: bool = False) -> Dict[str, int]:
    """Count cards per color."""
    counts = {color: 0 for color in COLORS}
    for card in cards:
        if unrevealed_only and card.revealed:
            continue
        counts[card.color] = counts.get(card.color, 0) + 1
    return counts
