"""Card and study-set identifiers.

Card ids are derived from card content so that progress survives re-importing
the same CSV under another file name. Current ids carry a version tag
(``cc2_``). Older deployments stored random tokens built from
``Date.now().toString(36) + Math.random().toString(36)``; those cannot be mapped
back to content and are detected by shape.
"""

import hashlib
import re
import unicodedata
from collections.abc import Iterable

CONTENT_ID_PREFIX = "cc2_"
CONTENT_HASH_LENGTH = 16
FIELD_SEPARATOR = "\x1f"

# Random base36 tokens: lowercase letters and digits only, long, both present
_LEGACY_ID_PATTERN = re.compile(r"^(?=[a-z0-9]*[a-z])(?=[a-z0-9]*\d)[a-z0-9]{16,}$")
_WHITESPACE = re.compile(r"\s+")


def normalize_card_text(text: str) -> str:
    """Normalize card text so cosmetic edits don't change the id."""
    text = unicodedata.normalize("NFC", text or "")
    return _WHITESPACE.sub(" ", text).strip().lower()


def derive_card_id(question: str, answer: str) -> str:
    """Return the content-derived id for a question/answer pair.

    Identical content (after normalization) always yields the same id.
    """
    payload = normalize_card_text(question) + FIELD_SEPARATOR + normalize_card_text(answer)
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    return CONTENT_ID_PREFIX + digest[:CONTENT_HASH_LENGTH]


def is_content_id(card_id: str) -> bool:
    return card_id.startswith(CONTENT_ID_PREFIX)


def is_legacy_id(card_id: str, detect_untagged: bool = True) -> bool:
    """Return True if ``card_id`` looks like an old random token.

    Tagged content ids are never legacy. Untagged ids are only sniffed while
    ``detect_untagged`` is on; turning it off trusts every stored id.
    """
    if not isinstance(card_id, str) or is_content_id(card_id):
        return False
    if not detect_untagged:
        return False
    return _LEGACY_ID_PATTERN.match(card_id) is not None


def find_legacy_ids(card_ids: Iterable[str], detect_untagged: bool = True) -> list[str]:
    """Return the legacy-looking ids among ``card_ids``, in order."""
    return [card_id for card_id in card_ids if is_legacy_id(card_id, detect_untagged)]


def study_set_id_from_filename(filename: str) -> str:
    """Build a stable study-set id from a CSV file name.

    >>> study_set_id_from_filename("Spanish Verbs (Part 1).csv")
    'spanish-verbs-part-1'
    """
    stem = re.sub(r"\.[^/.]+$", "", filename).lower()
    slug = re.sub(r"[^a-z0-9]", "-", stem)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")
