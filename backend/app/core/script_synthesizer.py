# In backend/core/script_synthesizer.py

import json
import logging
import re
from typing import List, Optional

from pydantic import ValidationError as SchemaValidationError

from app.core.errors import ExternalServiceError
from app.core.llm import TextCompletion, strip_code_fences
from app.schemas.podcast import PodcastOptions, PodcastScript, Segment

logger = logging.getLogger(__name__)

SCRIPT_SYSTEM_PROMPT = (
    "You are a podcast script writer. You convert written content into natural, engaging "
    "two-host podcast conversations. Always respond with valid JSON only, no markdown code blocks."
)
SCRIPT_TEMPERATURE = 0.8
SCRIPT_MAX_TOKENS = 4000

TYPO_SYSTEM_PROMPT = (
    "You fix spelling and grammar mistakes in podcast dialogue. Change nothing else: keep the "
    "wording, tone and punctuation style. Keep every tag in square brackets, such as [laughing], "
    "exactly as written and in the same place. Return only the corrected text."
)
TYPO_TEMPERATURE = 0.1

DEFAULT_HOST_ROLES = {
    "host1": "Asks clarifying questions, plays devil's advocate, represents the audience's perspective",
    "host2": "Explains concepts with enthusiasm, provides examples and analogies, makes complex ideas accessible",
}

DURATION_GUIDELINES = {
    "short": {"wordCount": "600-900 words", "segments": "4-6 exchanges", "description": "3-5 minute podcast"},
    "medium": {"wordCount": "1500-2200 words", "segments": "10-15 exchanges", "description": "8-12 minute podcast"},
    "long": {"wordCount": "2800-3800 words", "segments": "20-30 exchanges", "description": "15-20 minute podcast"},
}

EMOTION_TAGS = [
    "curious", "excited", "thoughtful", "amused", "serious", "enthusiastic",
    "cautious", "cheerful", "surprised", "warm", "laughing", "chuckling", "sigh",
]

BRACKET_TAG = re.compile(r"\[[^\]]*\]")


def build_podcast_script_prompt(source_content: str, options: PodcastOptions) -> str:
    """Build the user prompt asking for a two-host script as JSON."""
    host1, host2 = options.hostNames.host1, options.hostNames.host2
    roles = options.hostRoles
    host1_role = (roles.host1 if roles else None) or DEFAULT_HOST_ROLES["host1"]
    host2_role = (roles.host2 if roles else None) or DEFAULT_HOST_ROLES["host2"]
    duration = DURATION_GUIDELINES[options.targetDuration]

    focus_section = f"\n## EPISODE FOCUS\n\n{options.focusGuidance}\n" if options.focusGuidance else ""
    intro = "Include a brief intro welcoming listeners" if options.includeIntro else "Skip intro - start directly with content"
    outro = "Include a brief outro with key takeaways" if options.includeOutro else "Skip outro - end naturally"
    example = {
        "title": "Episode title based on content",
        "description": "Brief episode description for show notes",
        "segments": [
            {"speaker": host1, "text": "The dialogue for this segment...", "emotion": "curious"},
            {"speaker": host2, "text": "Response dialogue...", "emotion": "enthusiastic"},
        ],
        "keyTakeaways": ["Takeaway 1", "Takeaway 2", "Takeaway 3"],
    }

    return f"""Convert the following content into a two-host podcast conversation.

## HOSTS

**{host1}**: {host1_role}
**{host2}**: {host2_role}
{focus_section}
## FORMAT REQUIREMENTS

1. Target length: {duration['wordCount']} ({duration['description']})
2. Structure: {duration['segments']}
3. Tone: {options.tone}
4. {intro}
5. {outro}
6. Each segment is 1-3 sentences spoken by exactly one of the hosts.
7. Optional emotion per segment, one of: {', '.join(EMOTION_TAGS)}.
   Inline cues in square brackets such as "[laughing]" are allowed in the text.

## OUTPUT FORMAT

{json.dumps(example, indent=2)}

## CONTENT TO CONVERT

{source_content}

Return ONLY valid JSON."""


def parse_script_response(raw_response: str) -> PodcastScript:
    """Parse and validate the model's JSON answer into a PodcastScript."""
    try:
        data = json.loads(strip_code_fences(raw_response))
        script = PodcastScript.model_validate(data)
    except (json.JSONDecodeError, SchemaValidationError) as e:
        logger.error(f"ScriptSynthesizer: Failed to parse podcast script: {e}. Raw response: {raw_response[:500]}")
        raise ExternalServiceError("Failed to parse podcast script from AI response") from e

    if not script.segments:
        raise ExternalServiceError("Invalid script format: no segments")

    segments = []
    for index, segment in enumerate(script.segments):
        text = segment.text.strip()
        if not text:
            continue
        segments.append(segment.model_copy(update={
            "text": text,
            "originalText": segment.originalText or text,
            "lineNumber": segment.lineNumber or index + 1,
        }))
    return script.model_copy(update={"segments": segments})


def generate_podcast_script(source_content: str, options: PodcastOptions, complete: TextCompletion) -> PodcastScript:
    """Ask the text-completion capability for a script and validate it."""
    prompt = build_podcast_script_prompt(source_content, options)
    logger.debug(f"ScriptSynthesizer: Requesting script, prompt length {len(prompt)}")
    response = complete(SCRIPT_SYSTEM_PROMPT, prompt, temperature=SCRIPT_TEMPERATURE, max_tokens=SCRIPT_MAX_TOKENS)
    script = parse_script_response(response)
    logger.info(f"ScriptSynthesizer: Generated script '{script.title}' with {len(script.segments)} segments")
    return script


def fix_typos(text: str, complete: TextCompletion) -> str:
    """
    Best-effort spelling and grammar correction of one segment.

    Never raises: on any provider error, an empty answer, or an answer that
    altered the bracketed cues, the original text is returned.
    """
    if not text.strip():
        return text
    max_tokens = max(64, len(text) // 2)
    try:
        corrected = complete(TYPO_SYSTEM_PROMPT, text, temperature=TYPO_TEMPERATURE, max_tokens=max_tokens)
    except Exception as e:
        logger.warning(f"ScriptSynthesizer: Typo fix failed, keeping original text: {e}")
        return text

    corrected = (corrected or "").strip()
    if not corrected:
        return text
    if BRACKET_TAG.findall(corrected) != BRACKET_TAG.findall(text):
        logger.warning("ScriptSynthesizer: Typo fix changed bracket tags, keeping original text")
        return text
    return corrected


def fix_segment_typos(segments: List[Segment], complete: Optional[TextCompletion]) -> List[Segment]:
    """Run the typo pass over each segment. Segments keep their originalText."""
    if complete is None:
        return list(segments)
    fixed = []
    for segment in segments:
        text = fix_typos(segment.text, complete)
        original = segment.originalText if segment.originalText is not None else segment.text
        fixed.append(segment.model_copy(update={"text": text, "hasChanges": text != original}))
    return fixed
