from typing import Iterable, List, NamedTuple, Optional, Sequence


class ContactMatch(NamedTuple):
    matched: bool
    player_ids: List[str]


def strings_equal_case_insensitive(a: Optional[str], b: Optional[str]) -> bool:
    if a is None or b is None:
        return False
    return a.strip().upper() == b.strip().upper()


def all_contacts_match(contacts: Iterable, clue_word: Optional[str]) -> ContactMatch:
    """Check that every submitted contact names the clue word.

    ``contacts`` are objects with ``player_id`` and ``word`` attributes.
    An empty contact set never matches.
    """
    contacts = list(contacts)
    if not contacts:
        return ContactMatch(False, [])
    if all(strings_equal_case_insensitive(c.word, clue_word) for c in contacts):
        return ContactMatch(True, [c.player_id for c in contacts])
    return ContactMatch(False, [])


def next_revealed_letter(target_word: str, revealed_letters: Sequence[str]) -> Optional[str]:
    index = len(revealed_letters)
    if index >= len(target_word):
        return None
    return target_word[index]


def clue_word_must_start_with_revealed(candidate: Optional[str], revealed_letters: Sequence[str]) -> bool:
    if not candidate:
        return False
    return candidate.strip().upper().startswith(''.join(revealed_letters).upper())


def is_valid_target_word(word: Optional[str], min_length: int = 5) -> bool:
    if not word:
        return False
    word = word.strip()
    return word.isalpha() and len(word) >= min_length
