"""
Script resolution: turn a project's concept text into an ordered scene list.

Concept text is either already a script (JSON, fenced JSON, or text with scene
markers) or a plain idea. Detection is an ordered chain of named predicates;
the first that matches decides. Plain ideas go to the script-writing service
under a deadline, with the local scene planner as fallback.
"""

import asyncio
import json
import re
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

import structlog

from config import settings
from pipeline.errors import ScriptFormatError, ScriptTimeoutError
from pipeline.models import ProjectConfig, ResolvedScript, ScenePlan, ScriptDraft
from pipeline.scene_planner import parse_prompt, plan_scenes

logger = structlog.get_logger(__name__)

SCRIPT_LENGTH_THRESHOLD = 5000
WORDS_PER_SECOND_THRESHOLD = 300

SCENE_MARKER_PATTERNS = [
    re.compile(r"scene\s+\d+", re.IGNORECASE),
    re.compile(r"scene\s*:\s*\d+", re.IGNORECASE),
    re.compile(r"scene\s*#\s*\d+", re.IGNORECASE),
    re.compile(r"^\s*\d+\.\s*scene", re.IGNORECASE | re.MULTILINE),
    re.compile(r"scene\s*number\s*\d+", re.IGNORECASE),
]

TIMING_MARKER_PATTERNS = [
    re.compile(r"duration\s*[:=]\s*\d+", re.IGNORECASE),
    re.compile(r"\d+\s*seconds?", re.IGNORECASE),
    re.compile(r"startTime|endTime", re.IGNORECASE),
]

SCENE_SPLIT_PATTERN = re.compile(
    r"(?:^|\n)\s*(?:Scene\s*[#:]?\s*(\d+)|(\d+)\.\s*Scene|Scene\s*Number\s*(\d+))",
    re.IGNORECASE | re.MULTILINE,
)
FENCED_JSON_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
DURATION_FIELD = re.compile(r"duration\s*[=:]\s*(\d+(?:\.\d+)?)\s*(?:seconds?|sec)?", re.IGNORECASE)
SECONDS_PHRASE = re.compile(r"(\d+(?:\.\d+)?)\s*seconds?", re.IGNORECASE)
START_FIELD = re.compile(r"startTime\s*[=:]\s*(\d+(?:\.\d+)?)", re.IGNORECASE)
END_FIELD = re.compile(r"endTime\s*[=:]\s*(\d+(?:\.\d+)?)", re.IGNORECASE)

KEY_ELEMENT_OBJECTS = ["calendar", "book", "watch", "phone", "laptop", "table", "chair", "desk"]
STYLE_HINT_FIELDS = ("style", "mood", "color_palette", "pacing", "aspect_ratio")


class ScriptWriter(Protocol):
    async def write(self, concept: str, duration: float, style_hints: Dict[str, str]) -> ScriptDraft:
        ...


# ===== Detection =====

def _load_json(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None


def exceeds_length_threshold(text: str, duration: float) -> bool:
    return len(text) > SCRIPT_LENGTH_THRESHOLD


def exceeds_words_per_second(text: str, duration: float) -> bool:
    if duration <= 0:
        return False
    return len(text.split()) / duration >= WORDS_PER_SECOND_THRESHOLD


def has_scene_markers(text: str, duration: float) -> bool:
    return any(pattern.search(text) for pattern in SCENE_MARKER_PATTERNS)


def has_timing_with_scene_markers(text: str, duration: float) -> bool:
    has_timing = any(pattern.search(text) for pattern in TIMING_MARKER_PATTERNS)
    return has_timing and has_scene_markers(text, duration)


def is_structured_json(text: str, duration: float) -> bool:
    data = _load_json(text)
    if not isinstance(data, dict):
        return False
    if isinstance(data.get("scenes"), list):
        return True
    return bool(data.get("overallPrompt")) and bool(data.get("parsedPrompt"))


SCRIPT_PREDICATES: List[Tuple[str, Callable[[str, float], bool]]] = [
    ("exceeds_length_threshold", exceeds_length_threshold),
    ("exceeds_words_per_second", exceeds_words_per_second),
    ("has_scene_markers", has_scene_markers),
    ("has_timing_with_scene_markers", has_timing_with_scene_markers),
    ("is_structured_json", is_structured_json),
]


def classify_script(text: str, duration: float) -> Optional[str]:
    """
    Return the name of the first predicate that identifies ``text`` as a script,
    or None for a plain concept.
    """
    if not text or not text.strip():
        return None
    for name, predicate in SCRIPT_PREDICATES:
        if predicate(text, duration):
            return name
    return None


# ===== Timing =====

def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number


def fill_timing(raw_scenes: List[Dict[str, Any]], target_duration: float) -> List[ScenePlan]:
    """
    Complete partial scene timing left-to-right.

    Scenes lacking a duration share whatever target time is still unallocated.
    Scene numbers are reassigned by position so they stay unique.
    """
    scenes: List[ScenePlan] = []
    allocated = 0.0
    count = len(raw_scenes)

    for index, raw in enumerate(raw_scenes):
        duration = _to_float(raw.get("duration"))
        start = _to_float(raw.get("start_time"))
        end = _to_float(raw.get("end_time"))

        if not duration or duration <= 0:
            if start is not None and end is not None and end > start:
                duration = end - start
            else:
                remaining = target_duration - allocated
                duration = remaining / (count - index)
                if duration <= 0:
                    duration = target_duration / count

        if start is None or start < 0:
            start = allocated
        if end is None or end < start:
            end = start + duration

        allocated = end
        scenes.append(ScenePlan(
            scene_number=index + 1,
            prompt=raw["prompt"],
            duration=duration,
            start_time=start,
            end_time=end,
            extend_previous=bool(raw.get("extend_previous")),
        ))

    return scenes


# ===== Parsing strategies =====

def _scenes_from_json(data: Any) -> Optional[List[Dict[str, Any]]]:
    if not isinstance(data, dict) or not isinstance(data.get("scenes"), list):
        return None
    raw_scenes = []
    for scene in data["scenes"]:
        if not isinstance(scene, dict):
            continue
        prompt = str(scene.get("prompt") or "").strip()
        if not prompt:
            continue
        raw_scenes.append({
            "prompt": prompt,
            "duration": scene.get("duration"),
            "start_time": scene.get("startTime"),
            "end_time": scene.get("endTime"),
            "extend_previous": scene.get("extendPrevious"),
        })
    return raw_scenes or None


def _scenes_from_markers(text: str) -> Optional[List[Dict[str, Any]]]:
    matches = list(SCENE_SPLIT_PATTERN.finditer(text))
    if not matches:
        return None

    raw_scenes = []
    for index, match in enumerate(matches):
        end_pos = matches[index + 1].start() if index + 1 < len(matches) else len(text)
        body = text[match.end():end_pos].strip()

        duration_match = DURATION_FIELD.search(body) or SECONDS_PHRASE.search(body)
        start_match = START_FIELD.search(body)
        end_match = END_FIELD.search(body)

        prompt = DURATION_FIELD.sub("", body)
        prompt = SECONDS_PHRASE.sub("", prompt)
        prompt = START_FIELD.sub("", prompt)
        prompt = END_FIELD.sub("", prompt)
        prompt = prompt.strip().lstrip(":-#. \t").strip()
        if not prompt:
            continue

        raw_scenes.append({
            "prompt": prompt,
            "duration": duration_match.group(1) if duration_match else None,
            "start_time": start_match.group(1) if start_match else None,
            "end_time": end_match.group(1) if end_match else None,
        })
    return raw_scenes or None


def _scenes_from_paragraphs(text: str) -> Optional[List[Dict[str, Any]]]:
    sections = [section.strip() for section in re.split(r"\n\s*\n+", text)]
    raw_scenes = [{"prompt": section} for section in sections if len(section) > 50]
    return raw_scenes or None


def _key_elements_from_text(text: str) -> List[str]:
    lower = text.lower()
    return [element for element in KEY_ELEMENT_OBJECTS if element in lower]


def _style_hints(config: ProjectConfig, script_hints: Optional[Dict[str, Any]] = None) -> Dict[str, str]:
    hints: Dict[str, str] = {}
    for key in ("style", "mood"):
        if script_hints and script_hints.get(key):
            hints[key] = str(script_hints[key])
    for key in STYLE_HINT_FIELDS:
        value = getattr(config, key, None)
        if value:
            hints[key] = str(value)
    return hints


def parse_script(text: str, target_duration: float, config: ProjectConfig) -> ResolvedScript:
    """
    Extract scenes from text already known to be a script.

    Strategies, in order: JSON, markdown-fenced JSON, scene-marker splitter,
    blank-line paragraphs.

    Raises:
        ScriptFormatError: if no strategy yields at least one scene
    """
    candidates = [("json", _load_json(text))]
    fenced = FENCED_JSON_PATTERN.search(text)
    if fenced:
        candidates.append(("fenced_json", _load_json(fenced.group(1))))

    for source, data in candidates:
        raw_scenes = _scenes_from_json(data)
        if raw_scenes:
            parsed = data.get("parsedPrompt") if isinstance(data.get("parsedPrompt"), dict) else {}
            key_elements = [str(item) for item in parsed.get("keyElements") or []]
            return ResolvedScript(
                overall_prompt=str(data.get("overallPrompt") or text),
                scenes=fill_timing(raw_scenes, target_duration),
                key_elements=key_elements,
                style_hints=_style_hints(config, parsed),
                source=source,
            )

    for source, extractor in (("scene_markers", _scenes_from_markers), ("paragraphs", _scenes_from_paragraphs)):
        raw_scenes = extractor(text)
        if raw_scenes:
            scenes = fill_timing(raw_scenes, target_duration)
            return ResolvedScript(
                overall_prompt=text,
                scenes=scenes,
                key_elements=_key_elements_from_text(" ".join(scene.prompt for scene in scenes)),
                style_hints=_style_hints(config),
                source=source,
            )

    raise ScriptFormatError(
        "Text looks like a script but no scenes could be extracted",
        {"length": len(text)},
    )


# ===== Entry point =====

def _planned_script(concept: str, target_duration: float, config: ProjectConfig) -> ResolvedScript:
    parsed = parse_prompt(concept, target_duration)
    hints = _style_hints(config, {"style": parsed.style, "mood": parsed.mood})
    return ResolvedScript(
        overall_prompt=concept,
        scenes=plan_scenes(concept, target_duration, parsed),
        key_elements=_key_elements_from_text(concept),
        style_hints=hints,
        source="planner",
    )


async def resolve_script(
    concept: str,
    target_duration: float,
    config: ProjectConfig,
    writer: Optional[ScriptWriter] = None,
    timeout: Optional[float] = None,
) -> ResolvedScript:
    """
    Resolve a project's concept into an ordered scene list.

    Args:
        concept: Raw concept text or script
        target_duration: Target video length in seconds
        config: Project config (style overrides)
        writer: Script-writing service; the local planner is used when None
        timeout: Deadline for the writer call (default: settings.SCRIPT_TIMEOUT)

    Raises:
        ScriptFormatError: script-like text with no extractable scenes
        ScriptTimeoutError: the writer missed its deadline
    """
    log = logger.bind(target_duration=target_duration, concept_length=len(concept or ""))

    if not concept or not concept.strip():
        raise ScriptFormatError("Concept text is empty")

    matched = classify_script(concept, target_duration)
    if matched:
        log.info("script_detected", predicate=matched)
        resolved = parse_script(concept, target_duration, config)
        log.info("script_parsed", source=resolved.source, scene_count=len(resolved.scenes))
        return resolved

    if writer is None:
        log.info("script_writer_unavailable_using_planner")
        return _planned_script(concept, target_duration, config)

    timeout = timeout or settings.SCRIPT_TIMEOUT
    hints = _style_hints(config)
    log.info("script_writer_called", timeout=timeout)

    try:
        draft = await asyncio.wait_for(writer.write(concept, target_duration, hints), timeout=timeout)
    except asyncio.TimeoutError as e:
        log.error("script_writer_timeout", timeout=timeout)
        raise ScriptTimeoutError(timeout) from e
    except Exception as e:
        log.warning("script_writer_failed_using_planner", error=str(e), error_type=type(e).__name__)
        return _planned_script(concept, target_duration, config)

    raw_scenes = [
        {
            "prompt": scene.prompt.strip(),
            "duration": scene.duration,
            "start_time": scene.start_time,
            "end_time": scene.end_time,
        }
        for scene in sorted(draft.scenes, key=lambda s: s.scene_number)
        if scene.prompt and scene.prompt.strip()
    ]
    if not raw_scenes:
        log.warning("script_writer_returned_no_scenes_using_planner")
        return _planned_script(concept, target_duration, config)

    scenes = fill_timing(raw_scenes, target_duration)
    log.info("script_written", scene_count=len(scenes))
    return ResolvedScript(
        overall_prompt=draft.overall_prompt or concept,
        scenes=scenes,
        key_elements=draft.key_elements,
        style_hints=hints,
        source="writer",
    )
