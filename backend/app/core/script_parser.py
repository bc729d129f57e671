# In backend/core/script_parser.py

"""
Script parsing for speech synthesis.

Turns a raw script into speaker-labelled segments, normalises text so a TTS
engine reads it naturally, and estimates spoken duration.

Supported speaker labels, in detection order:
  **Alex:** text        (markdown bold)
  ALEX: text            (screenplay caps)
  [Alex]: text          (bracketed)
  Alex: text            (plain)
A label may also stand on its own line with the turn on the following lines.
"""

import logging
import math
import re
from typing import Iterable, List, Optional, Tuple

from app.schemas.podcast import Segment, ScriptMode

logger = logging.getLogger(__name__)

DEFAULT_NARRATOR = "Narrator"

# ~150 words per minute
WORDS_PER_MINUTE = 150
WORDS_PER_SECOND = WORDS_PER_MINUTE / 60

LABEL_PATTERNS = [
    ("markdown", re.compile(r"^\s*\*\*([^*:\n]+?)(?::\*\*|\*\*:)\s*(.*)$")),
    ("screenplay", re.compile(r"^\s*([A-Z][A-Z0-9 .'\-]{0,39}):\s*(.*)$")),
    ("bracketed", re.compile(r"^\s*\[([^\]\n]+)\]:\s*(.*)$")),
    ("plain", re.compile(r"^\s*([A-Z][\w.'\-]*(?: [A-Z][\w.'\-]*){0,3}):\s*(.*)$")),
]

# Labels that introduce show notes rather than a speaker turn.
METADATA_LABELS = {"episode", "title", "sound effect", "music"}
# Bold show-note lines; plain or caps HOST:/GUEST: stay valid speaker labels.
MARKDOWN_METADATA = re.compile(r"^\s*\*\*(?:episode|host|guest)(?::|\*\*:)", re.IGNORECASE)

EMOTION_CUE = re.compile(r"^\s*\[([A-Za-z][A-Za-z \-]*)\]")

ONES = ['', 'one', 'two', 'three', 'four', 'five', 'six', 'seven', 'eight', 'nine',
        'ten', 'eleven', 'twelve', 'thirteen', 'fourteen', 'fifteen', 'sixteen',
        'seventeen', 'eighteen', 'nineteen']
TENS = ['', '', 'twenty', 'thirty', 'forty', 'fifty', 'sixty', 'seventy', 'eighty', 'ninety']
DIGITS = ['zero'] + ONES[1:10]


# --- Number verbalisation ---
def number_to_words(num: int) -> str:
    """Spell out an integer in English words, e.g. 1250 -> 'one thousand two hundred fifty'."""
    if num == 0:
        return 'zero'
    if num < 0:
        return 'negative ' + number_to_words(-num)

    words = []
    for scale, name in ((1_000_000_000, 'billion'), (1_000_000, 'million'), (1_000, 'thousand')):
        if num >= scale:
            words.append(number_to_words(num // scale))
            words.append(name)
            num %= scale
    if num >= 100:
        words.append(ONES[num // 100])
        words.append('hundred')
        num %= 100
    if num >= 20:
        words.append(TENS[num // 10])
        num %= 10
    if num > 0:
        words.append(ONES[num])
    return ' '.join(words)


def _decimal_to_words(value: str) -> str:
    """'1.5' -> 'one point five'; '42' -> 'forty two'."""
    if '.' not in value:
        return number_to_words(int(value))
    whole, fraction = value.split('.', 1)
    return number_to_words(int(whole or 0)) + ' point ' + ' '.join(DIGITS[int(d)] for d in fraction)


def _dollars_and_cents(match) -> str:
    dollars, cents = match.group(1), match.group(2)
    result = number_to_words(int(dollars)) + ' dollars'
    if cents and int(cents) > 0:
        result += ' and ' + number_to_words(int(cents)) + ' cents'
    return result


def preprocess_text_for_tts(text: str) -> str:
    """
    Normalise text for speech synthesis.

    Currency, magnitudes and percentages are spelled out and markdown
    emphasis/heading markers are removed. Bracketed cues such as
    '[laughing]' are left as they are; TTS engines interpret them as
    delivery instructions.
    """
    processed = text

    # $200k -> two hundred thousand dollars
    processed = re.sub(
        r"\$(\d+(?:\.\d+)?)\s*[kK]\b",
        lambda m: number_to_words(round(float(m.group(1)) * 1000)) + ' dollars',
        processed,
    )
    # $1.5M -> one point five million dollars
    processed = re.sub(
        r"\$(\d+(?:\.\d+)?)\s*[mM]\b",
        lambda m: _decimal_to_words(m.group(1)) + ' million dollars',
        processed,
    )
    # $50B -> fifty billion dollars
    processed = re.sub(
        r"\$(\d+(?:\.\d+)?)\s*[bB]\b",
        lambda m: _decimal_to_words(m.group(1)) + ' billion dollars',
        processed,
    )
    # $1,000 -> one thousand dollars
    processed = re.sub(
        r"\$(\d{1,3}(?:,\d{3})+)(?:\.\d{2})?\b",
        lambda m: number_to_words(int(m.group(1).replace(',', ''))) + ' dollars',
        processed,
    )
    # $5 / $5.25 -> five dollars (and twenty five cents)
    processed = re.sub(r"\$(\d+)(?:\.(\d{2}))?\b", _dollars_and_cents, processed)

    # 10K followers -> ten thousand followers
    processed = re.sub(
        r"(\d+(?:\.\d+)?)\s*[kK]\b",
        lambda m: number_to_words(round(float(m.group(1)) * 1000)),
        processed,
    )
    processed = re.sub(
        r"(\d+(?:\.\d+)?)\s*[mM]\b",
        lambda m: _decimal_to_words(m.group(1)) + ' million',
        processed,
    )

    # 25% -> twenty five percent
    processed = re.sub(
        r"(\d+(?:\.\d+)?)\s*%",
        lambda m: _decimal_to_words(m.group(1)) + ' percent',
        processed,
    )

    # Markdown emphasis and headings (keep the content)
    processed = re.sub(r"\*\*([^*]+)\*\*", r"\1", processed)
    processed = re.sub(r"\*([^*]+)\*", r"\1", processed)
    processed = re.sub(r"__([^_]+)__", r"\1", processed)
    processed = re.sub(r"(?<!\w)_([^_]+)_(?!\w)", r"\1", processed)
    processed = re.sub(r"^\s*#{1,6}\s+", "", processed, flags=re.MULTILINE)

    return processed


# --- Parsing ---
def _has_metadata_label(line: str) -> bool:
    for _, pattern in LABEL_PATTERNS:
        match = pattern.match(line)
        if match and match.group(1).strip().lower() in METADATA_LABELS:
            return True
    return False


def _is_metadata_line(line: str) -> bool:
    stripped = line.strip()
    return (
        stripped.startswith('# ')
        or stripped.startswith('---')
        or re.match(r"^\*\*\[SOUND EFFECT:", stripped, re.IGNORECASE) is not None
        or MARKDOWN_METADATA.match(stripped) is not None
        or _has_metadata_label(stripped)
    )


def _match_label(pattern: re.Pattern, line: str) -> Optional[Tuple[str, str]]:
    match = pattern.match(line)
    if not match or MARKDOWN_METADATA.match(line):
        return None
    name = match.group(1).strip()
    if not name or name.lower() in METADATA_LABELS:
        return None
    return name, match.group(2)


def _detect_label_pattern(lines: List[str]) -> Optional[re.Pattern]:
    """
    Return the first label pattern naming at least two distinct speakers.
    Falls back to the first pattern naming exactly one speaker, or None.
    """
    single_speaker_pattern = None
    for style, pattern in LABEL_PATTERNS:
        names = set()
        for line in lines:
            label = _match_label(pattern, line)
            if label:
                names.add(label[0])
        if len(names) >= 2:
            logger.debug(f"ScriptParser: Detected '{style}' speaker labels: {sorted(names)}")
            return pattern
        if len(names) == 1 and single_speaker_pattern is None:
            single_speaker_pattern = pattern
    return single_speaker_pattern


def _make_segment(speaker: str, raw_text: str, line_number: int) -> Segment:
    processed = preprocess_text_for_tts(raw_text)
    cue = EMOTION_CUE.match(raw_text)
    return Segment(
        speaker=speaker,
        text=processed,
        originalText=raw_text,
        emotion=cue.group(1).strip().lower() if cue else None,
        lineNumber=line_number,
        hasChanges=processed != raw_text,
    )


def _split_turns(lines: List[str], pattern: re.Pattern) -> List[Tuple[str, str, int]]:
    """Group lines into (speaker, text, line_number) turns. Text before the first label is dropped."""
    turns = []
    current_speaker = None
    current_lines: List[str] = []
    current_line_number = 0

    def flush():
        if current_speaker is None:
            return
        text = '\n'.join(current_lines).strip()
        if text:
            turns.append((current_speaker, text, current_line_number))

    for index, line in enumerate(lines):
        label = _match_label(pattern, line)
        if label:
            flush()
            current_speaker, rest = label
            current_lines = [rest] if rest.strip() else []
            current_line_number = index + 1
        elif current_speaker is not None and not _is_metadata_line(line):
            current_lines.append(line)
    flush()
    return turns


def _first_content_line(lines: List[str]) -> int:
    for index, line in enumerate(lines):
        if line.strip():
            return index + 1
    return 1


def _speakers_in_order(segments: Iterable[Segment]) -> List[str]:
    speakers = []
    for segment in segments:
        if segment.speaker not in speakers:
            speakers.append(segment.speaker)
    return speakers


def parse_script(text: str) -> dict:
    """
    Parse a script into speaker segments, detecting the mode automatically.

    Returns a dict with 'mode', 'speakers' and 'segments'. Two or more
    distinct labelled speakers select podcast mode; otherwise the script is
    a single narration.
    """
    lines = text.splitlines()
    pattern = _detect_label_pattern(lines)

    if pattern is None:
        full_text = text.strip()
        segments = [_make_segment(DEFAULT_NARRATOR, full_text, _first_content_line(lines))] if full_text else []
        return {
            "mode": ScriptMode.SINGLE,
            "speakers": _speakers_in_order(segments),
            "segments": segments,
        }

    segments = [_make_segment(speaker, raw, line_number) for speaker, raw, line_number in _split_turns(lines, pattern)]
    speakers = _speakers_in_order(segments)
    return {
        "mode": ScriptMode.PODCAST if len(speakers) > 1 else ScriptMode.SINGLE,
        "speakers": speakers,
        "segments": segments,
    }


def parse_script_with_mode(
    text: str,
    mode: ScriptMode,
    speaker1_name: str = DEFAULT_NARRATOR,
    speaker2_name: str = "Guest",
) -> dict:
    """
    Parse a script with the mode chosen by the caller.

    single:  the whole script becomes one segment spoken by speaker1_name,
             with any speaker labels removed.
    podcast: labelled turns are kept as they are; an unlabelled script is
             split into paragraphs that alternate between the two names.
    """
    mode = ScriptMode(mode)
    auto = parse_script(text)
    lines = text.splitlines()

    if mode == ScriptMode.SINGLE:
        if not auto["segments"]:
            return {"mode": mode, "speakers": [], "segments": []}
        raw = '\n\n'.join(segment.originalText for segment in auto["segments"])
        segment = _make_segment(speaker1_name, raw, auto["segments"][0].lineNumber)
        return {"mode": mode, "speakers": [speaker1_name], "segments": [segment]}

    if _detect_label_pattern(lines) is not None:
        return {**auto, "mode": mode}

    segments = []
    paragraph: List[str] = []
    paragraph_start = 0
    for index, line in enumerate(lines + ['']):
        if line.strip():
            if not paragraph:
                paragraph_start = index + 1
            paragraph.append(line)
            continue
        if paragraph:
            speaker = speaker1_name if len(segments) % 2 == 0 else speaker2_name
            segments.append(_make_segment(speaker, '\n'.join(paragraph).strip(), paragraph_start))
            paragraph = []
    return {"mode": mode, "speakers": _speakers_in_order(segments), "segments": segments}


def preprocess_segments(segments: Iterable[Segment]) -> List[Segment]:
    """Return copies of the segments with TTS preprocessing applied to their text."""
    processed = []
    for segment in segments:
        original = segment.originalText if segment.originalText is not None else segment.text
        text = preprocess_text_for_tts(segment.text)
        processed.append(segment.model_copy(update={
            "text": text,
            "originalText": original,
            "hasChanges": text != original,
        }))
    return processed


# --- Duration ---
def count_words(text: str) -> int:
    return len([word for word in text.split() if word])


def estimate_segment_duration(text: str) -> int:
    """Seconds needed to speak the text: ceil(words / 2.5)."""
    return math.ceil(count_words(text) / WORDS_PER_SECOND)


def estimate_duration(segments: Iterable) -> int:
    """Sum of the per-segment estimates, in seconds."""
    return sum(estimate_segment_duration(segment.text) for segment in segments)


def format_duration(seconds: int) -> str:
    """Render seconds as m:ss."""
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}:{secs:02d}"
