"""
Provider output normalization.

Video models on Replicate answer in several shapes: a bare URL string, a list
of URLs, a dict keyed by one of a handful of names, or a FileOutput object.
Raw output is first classified into one of the tagged shapes below, in a
fixed order, and the winning shape yields exactly one URL.
"""

from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Union

import structlog

from pipeline.errors import UnrecognizedOutputShape

logger = structlog.get_logger(__name__)

# Checked in this order; first non-empty value wins.
MAPPING_URL_KEYS = ("url", "video", "videoUrl", "video_url", "output", "uri")


@dataclass(frozen=True)
class UrlOutput:
    url: str


@dataclass(frozen=True)
class UrlListOutput:
    items: List[Any]


@dataclass(frozen=True)
class MappingOutput:
    data: Mapping[str, Any]


@dataclass(frozen=True)
class FileLikeOutput:
    handle: Any


ProviderOutput = Union[UrlOutput, UrlListOutput, MappingOutput, FileLikeOutput]


def _is_http_url(value: Any) -> bool:
    return isinstance(value, str) and (value.startswith("http://") or value.startswith("https://"))


def classify_output(raw: Any) -> ProviderOutput:
    """
    Classify raw provider output into one tagged shape.

    Raises:
        UnrecognizedOutputShape: if no shape matches
    """
    if isinstance(raw, str):
        return UrlOutput(raw.strip())
    if isinstance(raw, (list, tuple)):
        return UrlListOutput(list(raw))
    if isinstance(raw, Mapping):
        return MappingOutput(raw)
    # replicate.helpers.FileOutput exposes .url; older clients only str() to the URL
    if isinstance(getattr(raw, "url", None), str) or (raw is not None and _is_http_url(str(raw))):
        return FileLikeOutput(raw)
    raise UnrecognizedOutputShape(raw)


def _url_from(shape: ProviderOutput, raw: Any) -> Optional[str]:
    if isinstance(shape, UrlOutput):
        return shape.url
    if isinstance(shape, UrlListOutput):
        if not shape.items:
            return None
        return normalize_output(shape.items[0])
    if isinstance(shape, MappingOutput):
        for key in MAPPING_URL_KEYS:
            value = shape.data.get(key)
            if value:
                return normalize_output(value)
        return None
    url_attr = getattr(shape.handle, "url", None)
    if isinstance(url_attr, str):
        return url_attr
    return str(shape.handle)


def normalize_output(raw: Any) -> str:
    """
    Reduce any supported provider output to a single http(s) URL.

    Example:
        >>> normalize_output(["https://x/a.mp4"])
        'https://x/a.mp4'
    """
    shape = classify_output(raw)
    url = _url_from(shape, raw)

    if not _is_http_url(url):
        logger.error(
            "provider_output_unrecognized",
            shape=type(shape).__name__,
            output_type=type(raw).__name__,
        )
        raise UnrecognizedOutputShape(raw)

    return url
