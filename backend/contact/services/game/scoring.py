"""Point values for every scoring event in a game of Contact.

All functions are pure; callers apply the returned amounts to the game's
score table through the store.
"""

from typing import Dict

TARGET_WORD_BASE = 100
TARGET_WORD_PER_LETTER_PENALTY = 10
TARGET_WORD_MINIMUM = 20
CONTACT_SUCCESS_CLUE_GIVER = 20
CONTACT_SUCCESS_GUESSER = 15
WORDMASTER_CORRECT_BLOCK = 10
FIRST_TO_GUESS_BONUS = 25


def target_word_points(revealed_count: int) -> int:
    """Points for guessing the secret word with ``revealed_count`` letters showing.

    Earlier guesses earn more: 100 with one letter revealed, 10 less per
    additional letter, never below 20.
    """
    penalty = (revealed_count - 1) * TARGET_WORD_PER_LETTER_PENALTY
    return max(TARGET_WORD_BASE - penalty, TARGET_WORD_MINIMUM)


def contact_success_points() -> Dict[str, int]:
    return {
        'clue_giver': CONTACT_SUCCESS_CLUE_GIVER,
        'guesser': CONTACT_SUCCESS_GUESSER,
    }


def wordmaster_block_points() -> int:
    return WORDMASTER_CORRECT_BLOCK


def first_to_guess_bonus() -> int:
    return FIRST_TO_GUESS_BONUS
