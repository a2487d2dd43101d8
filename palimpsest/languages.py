"""Language selection and language tag helpers."""

from __future__ import annotations

import re
from typing import Dict, Optional


LANGUAGES: Dict[str, str] = {
    "ar": "Arabic",
    "zh-Hans": "Chinese (Simplified)",
    "zh-Hant": "Chinese (Traditional)",
    "nl": "Dutch",
    "en": "English",
    "fr": "French",
    "de": "German",
    "hi": "Hindi",
    "id": "Indonesian",
    "it": "Italian",
    "ja": "Japanese",
    "ko": "Korean",
    "pl": "Polish",
    "pt": "Portuguese",
    "ru": "Russian",
    "es": "Spanish",
    "th": "Thai",
    "tr": "Turkish",
    "uk": "Ukrainian",
    "vi": "Vietnamese",
}

# Likely subtags, used to reduce a tag to its minimal form.
LIKELY_SCRIPTS: Dict[str, str] = {
    "ar": "Arab",
    "hi": "Deva",
    "ja": "Jpan",
    "ko": "Kore",
    "ru": "Cyrl",
    "th": "Thai",
    "uk": "Cyrl",
    "zh": "Hans",
}
LIKELY_REGIONS: Dict[str, str] = {
    "ar": "EG",
    "de": "DE",
    "en": "US",
    "es": "ES",
    "fr": "FR",
    "hi": "IN",
    "id": "ID",
    "it": "IT",
    "ja": "JP",
    "ko": "KR",
    "nl": "NL",
    "pl": "PL",
    "pt": "BR",
    "ru": "RU",
    "th": "TH",
    "tr": "TR",
    "uk": "UA",
    "vi": "VN",
    "zh": "CN",
    "zh-Hant": "TW",
}

_SUBTAG_SPLIT = re.compile(r"[-_]")


def _parse(tag: str) -> tuple[str, Optional[str], Optional[str]]:
    parts = [part for part in _SUBTAG_SPLIT.split(tag.strip()) if part]
    if not parts:
        raise ValueError("Empty language tag.")
    language = parts[0].lower()
    script: Optional[str] = None
    region: Optional[str] = None
    for part in parts[1:]:
        if len(part) == 4 and part.isalpha() and script is None:
            script = part.title()
        elif (len(part) == 2 and part.isalpha()) or (len(part) == 3 and part.isdigit()):
            region = part.upper()
    return language, script, region


def minimal_tag(tag: str) -> str:
    """Drop script and region subtags that are implied by the language.

    ``zh-Hans`` becomes ``zh``, ``en-US`` becomes ``en``; ``zh-Hant`` stays.
    """

    language, script, region = _parse(tag)
    likely_script = LIKELY_SCRIPTS.get(language, "Latn")
    keep_script = script is not None and script != likely_script
    region_key = f"{language}-{script}" if keep_script else language
    keep_region = region is not None and region != LIKELY_REGIONS.get(region_key)

    parts = [language]
    if keep_script:
        parts.append(script)  # type: ignore[arg-type]
    if keep_region:
        parts.append(region)  # type: ignore[arg-type]
    return "-".join(parts)


def resolve_language(value: str) -> Optional[str]:
    """Map a code or English name to a supported language code."""

    cleaned = value.strip()
    if not cleaned:
        return None
    lowered = cleaned.lower().replace("_", "-")
    for code, name in LANGUAGES.items():
        if lowered in {code.lower(), name.lower()}:
            return code
    try:
        reduced = minimal_tag(cleaned)
    except ValueError:
        return None
    for code in LANGUAGES:
        if minimal_tag(code) == reduced:
            return code
    return None


def language_name(code: str) -> str:
    return LANGUAGES.get(code, code)


def same_language(first: str, second: str) -> bool:
    return minimal_tag(first) == minimal_tag(second)
