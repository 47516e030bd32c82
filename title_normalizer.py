"""Turn release file names into queries for the movie database."""
from __future__ import annotations

import re

# Release, rip, codec and scene-group markers that never belong to a title.
RELEASE_TOKENS = (
    "480p", "576p", "720p", "1080p", "1080i", "2160p", "4k", "uhd", "hdr", "hdr10", "sdr",
    "brrip", "bdrip", "bluray", "blu-ray", "dvdrip", "dvdscr", "dvd", "webrip", "web-dl",
    "webdl", "hdtv", "hdrip", "hdcam", "camrip", "remux", "proper", "repack", "limited",
    "unrated", "extended", "remastered", "internal", "x264", "x265", "h264", "h265",
    "hevc", "avc", "xvid", "divx", "10bit", "8bit", "aac", "aac2", "ac3", "dts", "ddp5",
    "dd5", "truehd", "atmos", "mp3", "flac", "yify", "yts", "rarbg", "ettv", "eztv", "evo",
    "fgt", "sparks", "ntsc", "pal", "subbed", "dubbed", "multi",
)

_DISALLOWED_CHARS_RE = re.compile(r"[^\w &\-]|_")
_RELEASE_TOKEN_RE = re.compile(
    r"\b(?:%s)\b" % "|".join(re.escape(token) for token in sorted(RELEASE_TOKENS, key=len, reverse=True))
)
_WHITESPACE_RE = re.compile(r"\s+")


def sanitize(title: str) -> str:
    """Return the search candidate for ``title``.

    Lower-cases the text, blanks out everything that is not a letter, digit,
    space, hyphen or ampersand, removes release tokens and collapses the
    remaining whitespace. Applying it twice gives the same result as once.
    """
    text = (title or "").lower()
    text = _DISALLOWED_CHARS_RE.sub(" ", text)
    text = _RELEASE_TOKEN_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def mutate(candidate: str) -> str:
    """Drop the last word of ``candidate``; single words come back unchanged."""
    tokens = candidate.split()
    if len(tokens) <= 1:
        return candidate
    return " ".join(tokens[:-1])


def is_escalation_of(previous: str, candidate: str) -> bool:
    """True when ``previous`` is ``candidate`` or a shortened form of it."""
    if not previous:
        return False
    previous_tokens = previous.split()
    candidate_tokens = candidate.split()
    if not previous_tokens or len(previous_tokens) > len(candidate_tokens):
        return False
    return candidate_tokens[:len(previous_tokens)] == previous_tokens
