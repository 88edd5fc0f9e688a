"""Sentence splitting, segment timing and SRT rendering helpers.

A transcript becomes a list of :class:`SegmentDraft` units in one of two ways:

* the provider supplied native timestamps, which are sanitized so offsets
  are non-negative, strictly increasing and never overlap; or
* the text is split into sentence-like units and each unit gets a fixed
  *nominal window* laid out back to back from zero.

The two timing sources are never mixed within one transcript.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Iterator, Sequence, TypeVar

from voxscribe.models.transcription import TimingSource

# A run of terminal punctuation followed by whitespace ends a unit.  The
# punctuation stays attached to the sentence it closes.
SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")

T = TypeVar("T")


@dataclass(frozen=True)
class SegmentDraft:
    """A segment ready to be persisted; offsets are milliseconds."""

    text: str
    start_ms: int
    end_ms: int
    confidence: float | None = None
    timing_source: TimingSource = TimingSource.NOMINAL


def split_sentences(text: str | None) -> list[str]:
    """Split ``text`` on ``.``/``!``/``?`` runs followed by whitespace.

    Whitespace inside a unit is collapsed to single spaces and empty units
    are dropped, so ``" ".join(split_sentences(t))`` is ``t`` with normalized
    whitespace.
    """
    if not text:
        return []
    units = []
    for raw in SENTENCE_BOUNDARY.split(text.strip()):
        unit = " ".join(raw.split())
        if unit:
            units.append(unit)
    return units


def synthesize_segments(units: Sequence[str], window_ms: int, start_ms: int = 0) -> list[SegmentDraft]:
    """Assign each unit a fixed ``window_ms`` slot, sequentially from ``start_ms``."""
    if window_ms <= 0:
        raise ValueError("window_ms must be > 0")
    drafts = []
    cursor = start_ms
    for unit in units:
        drafts.append(SegmentDraft(text=unit, start_ms=cursor, end_ms=cursor + window_ms))
        cursor += window_ms
    return drafts


def _clamp_confidence(value: float | None) -> float | None:
    if value is None:
        return None
    return min(1.0, max(0.0, float(value)))


def sanitize_native_segments(segments: Iterable[SegmentDraft]) -> list[SegmentDraft]:
    """Force provider timings into valid, ordered segments.

    Empty units are dropped.  A unit starting before the previous one ended is
    shifted to the previous end; a unit whose end is not after its start is
    given a one millisecond duration.
    """
    cleaned: list[SegmentDraft] = []
    previous_end = 0
    for seg in segments:
        text = " ".join((seg.text or "").split())
        if not text:
            continue
        start = max(0, int(seg.start_ms), previous_end)
        end = max(int(seg.end_ms), start + 1)
        cleaned.append(
            SegmentDraft(
                text=text,
                start_ms=start,
                end_ms=end,
                confidence=_clamp_confidence(seg.confidence),
                timing_source=TimingSource.PROVIDER,
            )
        )
        previous_end = end
    return cleaned


def batched(items: Sequence[T], size: int) -> Iterator[list[T]]:
    if size <= 0:
        raise ValueError("size must be > 0")
    for offset in range(0, len(items), size):
        yield list(items[offset:offset + size])


def join_units(units: Iterable[str]) -> str:
    return " ".join(unit for unit in units if unit).strip()


# --- SRT Timestamp Formatting ---
def format_timestamp_srt(milliseconds: int) -> str:
    """Converts milliseconds to SRT time format (HH:MM:SS,mmm)"""
    assert milliseconds >= 0, "non-negative timestamp expected"

    hours = milliseconds // 3_600_000
    milliseconds -= hours * 3_600_000

    minutes = milliseconds // 60_000
    milliseconds -= minutes * 60_000

    secs = milliseconds // 1_000
    milliseconds -= secs * 1_000

    return f"{hours:02d}:{minutes:02d}:{secs:02d},{milliseconds:03d}"


def render_srt(segments: Iterable[SegmentDraft]) -> str:
    """Render segments as SubRip text, one numbered cue per segment."""
    srt_parts = []
    for index, seg in enumerate(segments, start=1):
        srt_parts.append(str(index))
        srt_parts.append(f"{format_timestamp_srt(seg.start_ms)} --> {format_timestamp_srt(seg.end_ms)}")
        srt_parts.append(seg.text)
        srt_parts.append("")  # Blank line separator for SRT entries
    return "\n".join(srt_parts)
