"""
Lightweight scene planning used when no script-writing service is available.

Splits a free-form concept into a handful of evenly-timed scenes. The scene
count grows with the target duration and with how dense the concept reads.
"""

import math
import re
from dataclasses import dataclass, field
from typing import List, Optional

from pipeline.models import ScenePlan

MOOD_KEYWORDS = ["energetic", "calm", "mysterious", "joyful", "dramatic", "peaceful", "intense", "relaxed"]
STYLE_KEYWORDS = ["cinematic", "animated", "realistic", "abstract", "minimalist", "vibrant", "dark", "bright"]
STOPWORDS = {
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "is", "are", "was", "were",
}
CONSTRAINT_PATTERNS = [
    re.compile(r"(?:no|avoid|don't|do not)\s+([^.,!?]+)", re.IGNORECASE),
    re.compile(r"(?:must|should|include|have)\s+([^.,!?]+)", re.IGNORECASE),
]


@dataclass
class ParsedPrompt:
    duration: float
    mood: Optional[str] = None
    style: Optional[str] = None
    constraints: Optional[str] = None
    keywords: List[str] = field(default_factory=list)


def parse_prompt(prompt: str, duration: float) -> ParsedPrompt:
    """Pull mood, style, constraints and up to ten keywords out of a concept."""
    lower = prompt.lower()
    mood = next((word for word in MOOD_KEYWORDS if word in lower), None)
    style = next((word for word in STYLE_KEYWORDS if word in lower), None)

    constraints = []
    for pattern in CONSTRAINT_PATTERNS:
        constraints.extend(match.group(1).strip() for match in pattern.finditer(prompt))

    keywords: List[str] = []
    for word in lower.split():
        if len(word) > 3 and word not in STOPWORDS and word not in keywords:
            keywords.append(word)
        if len(keywords) == 10:
            break

    return ParsedPrompt(
        duration=duration,
        mood=mood,
        style=style,
        constraints="; ".join(constraints) if constraints else None,
        keywords=keywords,
    )


def choose_scene_count(prompt: str, parsed: ParsedPrompt, total_duration: float) -> int:
    complex_prompt = len(prompt) > 200 or len(parsed.keywords) > 5

    if total_duration <= 5:
        return 2 if complex_prompt else 1
    if total_duration <= 15:
        return 3 if complex_prompt else 2
    if total_duration <= 30:
        return 5 if complex_prompt else 3
    if total_duration <= 60:
        return min(8, max(5, len(prompt) // 100)) if complex_prompt else 5
    return min(10, max(5, int(total_duration // 10)))


def split_prompt(prompt: str, count: int) -> List[str]:
    """Break a prompt into ``count`` ordered chunks of source text."""
    if "\n" in prompt:
        parts = [line.strip() for line in prompt.split("\n") if line.strip()]
    else:
        parts = [part.strip() for part in re.split(r"[.!?]\s+", prompt) if part.strip()]

    if len(parts) < count and "," in prompt:
        comma_parts = [part.strip() for part in prompt.split(",") if len(part.strip()) > 10]
        if len(comma_parts) >= count:
            parts = comma_parts

    if len(parts) < count:
        words = prompt.split()
        chunk = max(1, math.ceil(len(words) / count))
        parts = [" ".join(words[i * chunk:(i + 1) * chunk]) for i in range(count)]

    if len(parts) == count:
        return parts

    # More parts than scenes: group neighbours together
    per_scene = math.ceil(len(parts) / count)
    grouped = []
    for index in range(count):
        start = min(index * per_scene, len(parts) - 1)
        grouped.append(". ".join(parts[start:start + per_scene]))
    return grouped


def _position_prefix(scene_number: int, total: int) -> str:
    position = scene_number / total
    if position <= 0.2:
        return "Opening scene, establishing shot: "
    if position >= 0.8:
        return "Closing scene, finale: "
    if 0.4 <= position <= 0.6:
        return "Middle scene, main action: "
    return "Transition scene (continuing from previous scene, maintaining visual consistency): "


def plan_scenes(prompt: str, total_duration: float, parsed: Optional[ParsedPrompt] = None) -> List[ScenePlan]:
    """
    Plan evenly-timed scenes directly from a concept.

    Args:
        prompt: Free-form concept text
        total_duration: Target video length in seconds
        parsed: Optional pre-parsed prompt

    Returns:
        Ordered scene plans whose durations sum to total_duration
    """
    parsed = parsed or parse_prompt(prompt, total_duration)
    count = choose_scene_count(prompt, parsed, total_duration)
    scene_duration = total_duration / count
    parts = split_prompt(prompt, count)

    style_mood = ", ".join(
        text for text in (
            f"in {parsed.style} style" if parsed.style else None,
            f"with {parsed.mood} mood" if parsed.mood else None,
        ) if text
    )

    scenes = []
    for index, content in enumerate(parts, start=1):
        start = (index - 1) * scene_duration
        end = index * scene_duration
        scene_prompt = _position_prefix(index, count) + (content or prompt)
        if index > 1:
            scene_prompt += ". Maintain visual continuity with previous scenes, same style and aesthetic."
        if style_mood:
            scene_prompt += f". {style_mood}"
        scenes.append(ScenePlan(
            scene_number=index,
            prompt=scene_prompt,
            duration=scene_duration,
            start_time=start,
            end_time=end,
        ))
    return scenes
