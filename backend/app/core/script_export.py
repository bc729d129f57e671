# In backend/core/script_export.py

import logging

from app.core.errors import ValidationError
from app.core.script_parser import estimate_segment_duration
from app.schemas.podcast import ExportFormat, PodcastScript

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    ExportFormat.JSON: "application/json",
    ExportFormat.TXT: "text/plain",
    ExportFormat.SRT: "text/srt",
}


def format_srt_time(seconds: float) -> str:
    """Render seconds as an SRT timestamp, HH:MM:SS,mmm."""
    total_ms = int(round(seconds * 1000))
    hours, rest = divmod(total_ms, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    secs, ms = divmod(rest, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{ms:03d}"


def _single_line(text: str) -> str:
    # One segment per line; an inner blank line would split an SRT cue.
    return " ".join(text.split())


def _export_txt(script: PodcastScript) -> str:
    lines = [f"# {script.title}", ""]
    if script.description:
        lines += [script.description, ""]
    lines += ["---", ""]
    lines += [f"{segment.speaker}: {_single_line(segment.text)}" for segment in script.segments]
    if script.keyTakeaways:
        lines += ["", "---", "", "## Key Takeaways", ""]
        lines += [f"- {takeaway}" for takeaway in script.keyTakeaways]
    return "\n".join(lines) + "\n"


def _export_srt(script: PodcastScript) -> str:
    # Cue timings come from the text estimate; no alignment against the real audio is done.
    cues = []
    current = 0
    for index, segment in enumerate(script.segments, start=1):
        duration = estimate_segment_duration(segment.text)
        cues.append(
            f"{index}\n"
            f"{format_srt_time(current)} --> {format_srt_time(current + duration)}\n"
            f"[{segment.speaker}] {_single_line(segment.text)}\n"
        )
        current += duration
    return "\n".join(cues)


def export_script(script: PodcastScript, format: str) -> str:
    """Render a script as json, txt or srt. Pure and deterministic."""
    try:
        export_format = ExportFormat(format)
    except ValueError as e:
        raise ValidationError(f"Unknown export format: {format}") from e

    if export_format == ExportFormat.JSON:
        return script.model_dump_json(indent=2)
    if export_format == ExportFormat.TXT:
        return _export_txt(script)
    return _export_srt(script)
