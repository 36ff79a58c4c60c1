"""Supported display language configuration loader."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence

import yaml


class LanguageConfigError(ValueError):
    """Raised when ``languages.json`` contains invalid data."""


@dataclass(frozen=True)
class Language:
    """Immutable representation of a supported language."""

    code: str
    name: str
    native_name: str
    direction: str = "ltr"


def _load_payload(path: Path) -> Any:
    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")
    if suffix in {".json", ".jsonc"}:
        return json.loads(text)
    if suffix in {".yml", ".yaml"}:
        return yaml.safe_load(text)
    raise LanguageConfigError(f"Unsupported language config format: {path}")


class LanguageRegistry:
    """Load supported languages from ``languages.json`` (or a YAML equivalent)."""

    def __init__(self, path: str | Path | None = None) -> None:
        base_path = Path(__file__).resolve().parent
        self.path = Path(path) if path is not None else base_path / "languages.json"
        self._languages: List[Language] = []
        self._default = ""
        self._fallback = ""
        self.reload()

    # ------------------------------------------------------------------
    def reload(self) -> None:
        """Reload languages from disk and validate the structure."""

        if not self.path.exists():
            raise FileNotFoundError(f"Language config not found: {self.path}")

        try:
            raw = _load_payload(self.path)
        except (json.JSONDecodeError, yaml.YAMLError) as exc:
            raise LanguageConfigError(f"Language config is not parseable: {self.path}") from exc

        if not isinstance(raw, dict):
            raise LanguageConfigError("Language config must contain an object")
        entries = raw.get("languages")
        if not isinstance(entries, list) or not entries:
            raise LanguageConfigError("Language config must list at least one language")

        languages: List[Language] = []
        seen: set[str] = set()
        for idx, entry in enumerate(entries, start=1):
            if not isinstance(entry, dict):
                raise LanguageConfigError(f"Entry #{idx} must be an object")
            code = str(entry.get("code") or "").strip().lower()
            if not code:
                raise LanguageConfigError(f"Entry #{idx} is missing a non-empty 'code'")
            if code in seen:
                raise LanguageConfigError(f"Duplicate language code detected: {code}")
            seen.add(code)
            name = str(entry.get("name") or code).strip()
            native_name = str(entry.get("native_name") or name).strip()
            direction = str(entry.get("direction") or "ltr").strip().lower()
            if direction not in {"ltr", "rtl"}:
                raise LanguageConfigError(f"Entry {code} has invalid direction '{direction}'")
            languages.append(Language(code, name, native_name, direction))

        default = str(raw.get("default") or languages[0].code).strip().lower()
        fallback = str(raw.get("fallback") or default).strip().lower()
        for label, value in (("default", default), ("fallback", fallback)):
            if value not in seen:
                raise LanguageConfigError(f"{label} language '{value}' is not a supported language")

        self._languages = languages
        self._default = default
        self._fallback = fallback

    # ------------------------------------------------------------------
    @property
    def languages(self) -> List[Language]:
        """Return a shallow copy of the supported languages."""

        return list(self._languages)

    @property
    def default_language(self) -> str:
        """Language assumed for new content when none is given."""

        return self._default

    @property
    def fallback_language(self) -> str:
        """Language tried right after the requested one, and the key for legacy text."""

        return self._fallback

    def codes(self) -> Sequence[str]:
        return tuple(language.code for language in self._languages)

    def is_supported(self, code: str) -> bool:
        return code in self.codes()

    def get(self, code: str) -> Language | None:
        for language in self._languages:
            if language.code == code:
                return language
        return None

    def fallback_chain(self, primary: str) -> List[str]:
        """Return ``[primary, fallback, *remaining supported languages]`` without repeats."""

        chain = [primary]
        if primary != self._fallback:
            chain.append(self._fallback)
        for code in self.codes():
            if code not in chain:
                chain.append(code)
        return chain

    def label_map(self) -> Dict[str, str]:
        return {language.code: language.native_name for language in self._languages}

    # ------------------------------------------------------------------
    def __iter__(self) -> Iterable[Language]:
        return iter(self._languages)


LANGUAGES = LanguageRegistry(os.getenv("LANGUAGES_CONFIG") or None)
"""Singleton registry used throughout the application."""

DEFAULT_LANGUAGE = LANGUAGES.default_language
FALLBACK_LANGUAGE = LANGUAGES.fallback_language
