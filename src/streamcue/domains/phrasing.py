"""
Pure functional domain logic for turning a speech request into the phrase that gets spoken.

Contains no side effects - all functions are pure and deterministic.

Business rules:
- Whitespace is collapsed and emote positions supplied by the chat source are cut out
- Cheer emotes ("Cheer100") are stripped from cheer messages only
- Dictionary substitutions are whole-word and case-insensitive
- A "said" phrase names the speaker unless the same speaker spoke within the timeout
- Longer phrases are spoken faster and higher, shorter ones slower and lower
"""

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from ..speech.models import SpeechKind

DEFAULT_SAID_TEMPLATE = "%userName said: %userInput"

# Chat messages cap at 500 characters; prosody scales around a 150 character phrase
PROSODY_CENTER = 150
PROSODY_SPAN = 500

CHEER_EMOTE_PREFIXES = (
    "Cheer",
    "cheerwhal",
    "Corgo",
    "Scoops",
    "uni",
    "ShowLove",
    "Party",
    "SeemsGood",
    "Pride",
    "Kappa",
    "FrankerZ",
    "HeyGuys",
    "DansGame",
    "EleGiggle",
    "TriHard",
    "Kreygasm",
    "4Head",
    "SwiftRage",
    "NotLikeThis",
    "FailFish",
    "VoHiYo",
    "PJSalt",
    "MrDestructoid",
    "bday",
    "RIPCheer",
    "Shamrock",
    "BitBoss",
    "Streamlabs",
    "Muxy",
    "HolidayCheer",
)
_CHEER_EMOTE_RE = re.compile(
    r"(?<!\S)(?:" + "|".join(re.escape(p) for p in CHEER_EMOTE_PREFIXES) + r")\d+(?!\S)",
    re.IGNORECASE,
)
_WHITESPACE_RE = re.compile(r"\s+")
_TRAILING_DIGITS_RE = re.compile(r"\d+$")


@dataclass
class PhrasingOptions:
    """Static phrasing settings, built once from configuration."""

    said_template: str = DEFAULT_SAID_TEMPLATE
    skip_said: bool = False
    speaker_timeout_ms: int = 5000
    dictionary: dict[str, str] = field(default_factory=dict)
    skip_dictionary_for_announcements: bool = True
    wrap_ssml: bool = False
    speaking_rate_override: float | None = None


def replace_tags(template: str, tags: Mapping[str, str]) -> str:
    """
    Replaces ``%tag`` placeholders in a template.

    Pure function with no side effects. Longer tag names are substituted
    first so ``%userBitsTotal`` is not clobbered by ``%userBits``.

    Args:
        template: Text containing ``%name`` placeholders
        tags: Placeholder name (without ``%``) to replacement text

    Returns:
        Template with every known placeholder replaced
    """
    result = template
    for name in sorted(tags, key=len, reverse=True):
        result = result.replace(f"%{name}", str(tags[name]))
    return result


def remove_ranges(text: str, ranges: Iterable[tuple[int, int]]) -> str:
    """
    Cuts inclusive ``(start, end)`` character ranges out of the text.

    Pure function with no side effects. Ranges are applied from the end of the
    text backwards so earlier positions stay valid.
    """
    result = text
    for start, end in sorted(ranges, reverse=True):
        if 0 <= start <= end < len(result):
            result = result[:start] + result[end + 1 :]
    return result


def clean_text(
    text: str,
    *,
    remove_cheer_emotes: bool = False,
    clear_ranges: Iterable[tuple[int, int]] = (),
) -> str:
    """
    Normalizes user text before phrasing.

    Pure function with no side effects.

    Args:
        text: Raw user input
        remove_cheer_emotes: Strip bit emotes such as ``Cheer100``
        clear_ranges: Emote positions reported by the chat source

    Returns:
        Cleaned text, possibly empty
    """
    result = remove_ranges(text, clear_ranges)
    if remove_cheer_emotes:
        result = _CHEER_EMOTE_RE.sub(" ", result)
    return _WHITESPACE_RE.sub(" ", result).strip()


def clean_name(user_name: str) -> str:
    """
    Makes a login speakable: underscores become spaces, trailing digits go.

    Pure function with no side effects. Falls back to the original name if
    nothing would remain.
    """
    cleaned = _TRAILING_DIGITS_RE.sub("", user_name.replace("_", " ")).strip()
    cleaned = _WHITESPACE_RE.sub(" ", cleaned)
    return cleaned or user_name


def apply_dictionary(text: str, dictionary: Mapping[str, str]) -> str:
    """
    Substitutes dictionary words (whole-word, case-insensitive).

    Pure function with no side effects.
    """
    result = text
    for word, replacement in dictionary.items():
        if not word:
            continue
        pattern = re.compile(r"\b" + re.escape(word) + r"\b", re.IGNORECASE)
        result = pattern.sub(lambda _match, r=replacement: r, result)
    return result


def should_name_speaker(
    last_speaker: str,
    speaker: str,
    elapsed_ms: float,
    speaker_timeout_ms: int,
    skip_said: bool = False,
) -> bool:
    """
    Determines whether a "said" phrase should be prefixed with the speaker's name.

    Pure function with no side effects.

    Args:
        last_speaker: Speaker of the previous successfully queued phrase
        speaker: Speaker of this phrase
        elapsed_ms: Milliseconds since the previous phrase was queued
        speaker_timeout_ms: How long a speaker stays "current"
        skip_said: Never name the speaker

    Returns:
        True if the name prefix should be spoken
    """
    if skip_said:
        return False
    if elapsed_ms > speaker_timeout_ms:
        last_speaker = ""
    return last_speaker != speaker


def build_utterance(
    kind: SpeechKind,
    text: str,
    speaker_name: str,
    *,
    bits: int = 0,
    name_speaker: bool = True,
    said_template: str = DEFAULT_SAID_TEMPLATE,
) -> str:
    """
    Wraps cleaned text in the phrasing for its kind.

    Pure function with no side effects.
    """
    if kind is SpeechKind.SAID:
        if not name_speaker:
            return text
        return replace_tags(said_template, {"userName": speaker_name, "userInput": text})
    if kind is SpeechKind.ACTION:
        return f"{speaker_name} {text}"
    if kind is SpeechKind.CHEER:
        unit = "bits" if bits > 1 else "bit"
        return f"{speaker_name} cheered {bits} {unit}: {text}"
    return text


def wrap_ssml(text: str) -> str:
    """Surrounds text in ``<speak>`` tags unless it already is."""
    if text.startswith("<speak>"):
        return text
    return f"<speak>{text}</speak>"


def prosody_for(text: str, speaking_rate_override: float | None = None) -> tuple[float, float]:
    """
    Derives (speaking rate, pitch) from phrase length.

    Pure function with no side effects. ``t = (len - 150) / 500``; rate is
    ``1.0 + 0.25 * t`` and pitch is ``t`` semitones.
    """
    variation = (len(text) - PROSODY_CENTER) / PROSODY_SPAN
    rate = speaking_rate_override if speaking_rate_override is not None else 1.0 + variation * 0.25
    return rate, variation


def phrase(
    kind: SpeechKind,
    text: str,
    speaker: str,
    options: PhrasingOptions,
    *,
    bits: int = 0,
    name_speaker: bool = True,
    skip_dictionary: bool = False,
    clear_ranges: Iterable[tuple[int, int]] = (),
) -> str:
    """
    Runs the whole phrasing chain: clean, dictionary, kind template, SSML.

    Pure function with no side effects.

    Returns:
        The phrase to synthesize, or an empty string if nothing speakable remains
    """
    cleaned = clean_text(text, remove_cheer_emotes=kind is SpeechKind.CHEER, clear_ranges=clear_ranges)
    if not cleaned:
        return ""

    if kind is SpeechKind.ANNOUNCEMENT and options.skip_dictionary_for_announcements:
        skip_dictionary = True
    if not skip_dictionary:
        cleaned = apply_dictionary(cleaned, options.dictionary)

    result = build_utterance(
        kind,
        cleaned,
        clean_name(speaker),
        bits=bits,
        name_speaker=name_speaker,
        said_template=options.said_template,
    )
    if options.wrap_ssml:
        result = wrap_ssml(result)
    return result
