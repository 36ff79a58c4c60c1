"""Resolution and editing of language-keyed text fields.

Topic names, descriptions and key points are stored as a mapping from
language code to text, usually serialized as a JSON object.  Older rows
hold plain text in an unknown language and some rows are simply broken,
so every helper here accepts the stored value in whatever shape it
arrives and degrades to best-effort text instead of raising.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional, Sequence, Set, Tuple

from languages import FALLBACK_LANGUAGE, LANGUAGES

_LOGGER = logging.getLogger(__name__)

MultilingualText = Dict[str, str]
StoredText = Mapping[str, Any] | str | None


def _decode(stored: Any) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """Split ``stored`` into ``(mapping, legacy_text)``; at most one is set."""

    if stored is None:
        return None, None
    if isinstance(stored, Mapping):
        return dict(stored), None
    if isinstance(stored, (bytes, bytearray)):
        try:
            stored = stored.decode("utf-8")
        except UnicodeDecodeError:
            _LOGGER.debug("Discarding undecodable multilingual bytes (%d bytes)", len(stored))
            return None, None
    if not isinstance(stored, str):
        _LOGGER.debug("Unexpected multilingual value of type %s", type(stored).__name__)
        return None, None
    if not stored:
        return None, None
    try:
        parsed = json.loads(stored)
    except ValueError:
        return None, stored
    except RecursionError:
        _LOGGER.debug("Treating deeply nested multilingual value as legacy text")
        return None, stored
    if isinstance(parsed, dict):
        return parsed, None
    # Valid JSON that is not an object ("42", "null", "[...]") is still legacy text.
    return None, stored


def _usable(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def resolve(
    stored: Any,
    requested_language: str,
    fallback_chain: Optional[Sequence[str]] = None,
    fallback: str = "",
) -> str:
    """Return the display string for ``requested_language``.

    The chain defaults to ``[requested, fallback language, *other supported]``.
    When no chain entry has text, the first non-empty value in the mapping's
    own order wins; when nothing usable exists ``fallback`` is returned.
    Legacy plain text is returned verbatim whatever language was requested.
    """

    mapping, legacy = _decode(stored)
    if legacy is not None:
        return legacy
    if not mapping:
        return fallback

    chain = fallback_chain if fallback_chain is not None else LANGUAGES.fallback_chain(requested_language)
    for language in chain:
        value = mapping.get(language)
        if _usable(value):
            return value
    for value in mapping.values():
        if _usable(value):
            return value
    return fallback


def set_language(stored: Any, language: str, new_value: str) -> MultilingualText:
    """Return a new mapping with ``language`` set to ``new_value``.

    Every other key is kept.  Legacy plain text is first filed under the
    fallback language so it survives the update.  The stored value is
    trimmed, and a blank ``new_value`` clears that one language.
    """

    mapping, legacy = _decode(stored)
    updated: Dict[str, Any] = dict(mapping or {})
    if legacy is not None:
        updated[FALLBACK_LANGUAGE] = legacy
    text = (new_value or "").strip()
    if text:
        updated[language] = text
    else:
        updated.pop(language, None)
    return updated


def available_languages(stored: Any) -> Set[str]:
    mapping, _ = _decode(stored)
    if not mapping:
        return set()
    return {str(language) for language, value in mapping.items() if _usable(value)}


def has_translation(stored: Any, language: str) -> bool:
    mapping, _ = _decode(stored)
    return bool(mapping) and _usable(mapping.get(language))


def create_text(text: str, language: Optional[str] = None) -> MultilingualText:
    return {language or LANGUAGES.default_language: text}


def normalize_text(value: Any) -> MultilingualText:
    """Clean a raw payload value into a mapping of trimmed, non-empty strings."""

    mapping, legacy = _decode(value)
    if legacy is not None:
        text = legacy.strip()
        return {FALLBACK_LANGUAGE: text} if text else {}
    normalized: MultilingualText = {}
    for language, text in (mapping or {}).items():
        code = str(language).strip().lower()
        if not code or not _usable(text):
            continue
        normalized[code] = text.strip()
    return normalized


def dump_text(mapping: Mapping[str, str]) -> str:
    """Serialize a mapping to the persisted JSON form."""

    return json.dumps(dict(mapping), ensure_ascii=False)


def repair_stored(stored: Any) -> Tuple[Optional[str], bool]:
    """Return ``(serialized, changed)`` for a persisted text field.

    Legacy text that does not parse as a JSON object is copied under every
    supported language so that each display language finds it.
    """

    mapping, legacy = _decode(stored)
    if legacy is not None:
        _LOGGER.info("Repairing legacy multilingual text (%d chars)", len(legacy))
        return dump_text({code: legacy for code in LANGUAGES.codes()}), True
    if mapping is None:
        return None, False
    if isinstance(stored, str):
        return stored, False
    return dump_text(mapping), False


__all__ = [
    "MultilingualText",
    "StoredText",
    "available_languages",
    "create_text",
    "dump_text",
    "has_translation",
    "normalize_text",
    "repair_stored",
    "resolve",
    "set_language",
]
