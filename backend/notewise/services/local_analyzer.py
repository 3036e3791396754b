"""
NoteWise Backend — Local Heuristic Analyzer
============================================

What:  Deterministic title/summary/tag extraction without any network call.
Who:   AnalysisService, whenever the Gemini analysis fails for any reason.
How:   Pure string heuristics; `run()` is a total function and never raises.

Text path:
    segments = content split on runs of . ! ? (blank pieces dropped)
    title    = first 8 words of the first segment, capitalized
    summary  = content itself if ≤ 200 chars, else the first 3 segments
    tags     = [content type] + top 5 frequent words (len > 3, no stopwords)

Image path (image content with an image URL):
    title/summary from the file name and any free-text context,
    tags = image, visual, media + file extension
"""

import re
from collections import Counter
from typing import List, Tuple

from notewise.schemas.analysis import (
    MAX_SUMMARY_LENGTH,
    MAX_TITLE_LENGTH,
    AnalysisRequest,
    AnalysisResult,
)

UNTITLED = "Untitled Note"
NO_SUMMARY = "No content available for summary."
IMAGE_TITLE = "Image Note"
IMAGE_SUMMARY = (
    "An image file has been uploaded to this note. "
    "The image is stored securely and can be viewed in the note details."
)

# The mobile client sends "Image file: <name>" when the user typed nothing.
IMAGE_PLACEHOLDER = "Image file:"

STOPWORDS = frozenset({
    "this", "that", "with", "have", "will", "been", "from", "they", "know", "want",
    "were", "said", "each", "which", "their", "time", "would", "there", "could",
})

TITLE_WORDS = 8
IMAGE_TITLE_WORDS = 6
SHORT_CONTENT = 200
SUMMARY_SEGMENTS = 3
TOP_WORDS = 5
MIN_TAGS = 3
PADDING_TAGS = ("note", "content")
IMAGE_TAGS = ("image", "visual", "media")

_SEGMENT_SPLIT = re.compile(r"[.!?]+")
_WORD = re.compile(r"\b\w+\b")
_TRAILING_PUNCT = re.compile(r"[.!,;:]+$")
_SEPARATORS = re.compile(r"[_-]")


def split_segments(content: str) -> List[str]:
    """Splits text into sentence-like segments, dropping blank ones."""
    return [part.strip() for part in _SEGMENT_SPLIT.split(content) if part.strip()]


def clip(text: str, limit: int) -> str:
    """Cuts `text` to `limit` characters, marking the cut with an ellipsis."""
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def top_words(content: str, count: int = TOP_WORDS) -> List[str]:
    """Most frequent significant words; ties keep first-occurrence order."""
    words = [
        word for word in _WORD.findall(content.lower())
        if len(word) > 3 and word not in STOPWORDS
    ]
    # Counter keeps insertion order and most_common() sorts stably.
    return [word for word, _ in Counter(words).most_common(count)]


def split_file_name(image_ref: str) -> Tuple[str, str]:
    """Returns (cleaned display name, lowercased extension) for an image URL."""
    file_name = image_ref.split("/")[-1].split("?")[0] or "image"
    stem, dot, extension = file_name.rpartition(".")
    if not dot:
        stem, extension = file_name, ""
    display = " ".join(_SEPARATORS.sub(" ", stem).split())
    return display, extension.lower()


class LocalAnalyzer:
    """Fallback analyzer. Stateless; one shared instance is enough."""

    def run(self, request: AnalysisRequest) -> AnalysisResult:
        if request.wants_vision:
            return self._analyze_image(request)
        return self._analyze_text(request)

    # ── Text ──────────────────────────────────────────────────────────────

    def _analyze_text(self, request: AnalysisRequest) -> AnalysisResult:
        content = request.content
        segments = split_segments(content)

        tags = [request.content_type.value, *top_words(content)]
        if len(tags) < MIN_TAGS:
            tags.extend(PADDING_TAGS)

        return AnalysisResult.bounded(
            title=clip(self._title(segments), MAX_TITLE_LENGTH),
            summary=clip(self._summary(content, segments), MAX_SUMMARY_LENGTH),
            tags=tags,
        )

    @staticmethod
    def _title(segments: List[str]) -> str:
        if not segments:
            return UNTITLED
        words = " ".join(segments[0].split()[:TITLE_WORDS])
        title = _TRAILING_PUNCT.sub("", words[:1].upper() + words[1:])
        return title or UNTITLED

    @staticmethod
    def _summary(content: str, segments: List[str]) -> str:
        if not content.strip():
            return NO_SUMMARY
        if len(content) <= SHORT_CONTENT:
            return content
        return " ".join(segments[:SUMMARY_SEGMENTS]) or content

    # ── Image ─────────────────────────────────────────────────────────────

    def _analyze_image(self, request: AnalysisRequest) -> AnalysisResult:
        display_name, extension = split_file_name(request.image_ref or "")
        context = request.content.strip()

        if context and IMAGE_PLACEHOLDER not in context:
            label = display_name or " ".join(context.split()[:IMAGE_TITLE_WORDS])
            title = f"Image: {label}"
            excerpt = context[:SHORT_CONTENT] + ("..." if len(context) > SHORT_CONTENT else "")
            summary = f"This image was uploaded with the following context: {excerpt}"
        else:
            title = IMAGE_TITLE
            summary = IMAGE_SUMMARY

        tags = list(IMAGE_TAGS)
        if extension:
            tags.append(extension)

        return AnalysisResult.bounded(
            title=clip(title, MAX_TITLE_LENGTH),
            summary=clip(summary, MAX_SUMMARY_LENGTH),
            tags=tags,
        )
