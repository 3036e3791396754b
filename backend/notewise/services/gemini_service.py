"""
NoteWise Backend — Google Gemini Analyzer
==========================================

What:  Concrete ContentAnalyzer that asks Gemini for a title, summary and tags.
How:   Sends a JSON-only prompt (plus the image bytes for image notes), then
       pulls the first balanced JSON object out of the reply.
Who:   Constructed once in create_app(); called by AnalysisService per request.

Resilience Strategy:
    1. One attempt per request; the caller falls back to LocalAnalyzer instead
       of retrying
    2. asyncio.wait_for bounds the whole call (image fetch included) by
       AI_TIMEOUT_SECONDS
    3. A circuit breaker skips the call entirely while Gemini keeps failing
    4. Every failure leaves this module as UpstreamError

Model selection:
    image content with an image URL → GEMINI_VISION_MODEL (image sent inline)
    everything else                 → GEMINI_MODEL (text preview ≤ 2,000 chars)

Image fetching:
    Public https hosts only (AI_IMAGE_HOSTS narrows further), no redirects,
    an image/* content type, and at most AI_MAX_IMAGE_BYTES of body.
"""

import asyncio
import ipaddress
import json
import logging
import time
import uuid
from typing import Any, Dict, List, Optional, Union

import google.generativeai as genai
import httpx

from notewise.config import settings
from notewise.exceptions import CircuitBreakerOpenError, UpstreamError
from notewise.schemas.analysis import MAX_TAGS, AnalysisRequest, AnalysisResult
from notewise.services.llm_base import ContentAnalyzer

logger = logging.getLogger(__name__)

CONTENT_PREVIEW_LENGTH = 2000


def is_public_host(host: str) -> bool:
    """False for localhost names and for IP literals outside the public range."""
    if not host or host == "localhost" or host.endswith(".localhost"):
        return False
    try:
        address = ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        return True
    return address.is_global


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker Implementation
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Implements the circuit breaker pattern around the Gemini call.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → Allow ONE request through
            → On success: transition to CLOSED (reset failure_count)
            → On failure: transition back to OPEN (reset timer)

    While OPEN, analysis requests go straight to the local fallback instead
    of waiting out AI_TIMEOUT_SECONDS on a provider that is down.

    Thread Safety:
        Not thread-safe (plain counters). The analyzer is only used from the
        event loop of a single process.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Check if a request is allowed through the circuit breaker.

        Raises:
            CircuitBreakerOpenError if circuit is OPEN and recovery timeout hasn't elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Circuit breaker transitioning to HALF_OPEN after %.1fs",
                    elapsed,
                )
                self.state = self.HALF_OPEN
                return True
            remaining = int(self.recovery_timeout - elapsed)
            raise CircuitBreakerOpenError(recovery_time=remaining)

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (service recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker returning to OPEN (test request failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Response Parsing
# ══════════════════════════════════════════════════════════════════════════

def extract_json_object(text: str) -> Optional[str]:
    """
    Returns the first balanced `{...}` span in `text`, or None.

    Braces inside JSON strings (including escaped quotes) do not count
    towards the balance, so `{"summary": "use {x} here"}` is one object.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:index + 1]
    return None


def parse_analysis(text: str, content_type: str) -> AnalysisResult:
    """
    Turns a raw model reply into a bounded AnalysisResult.

    Raises:
        UpstreamError: no JSON object, invalid JSON, not an object, or a
            missing, non-string or blank title or summary.
    """
    raw = extract_json_object(text)
    if raw is None:
        raise UpstreamError("AI response did not contain a JSON object")

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise UpstreamError(
            "AI response was not valid JSON",
            context={"error": str(e)},
        ) from e

    if not isinstance(data, dict):
        raise UpstreamError("AI response JSON was not an object")

    title = data.get("title")
    summary = data.get("summary")
    if not isinstance(title, str) or not isinstance(summary, str):
        raise UpstreamError(
            "AI response is missing a string title or summary",
            context={"keys": sorted(data.keys())},
        )

    title = title.strip()
    summary = summary.strip()
    if not title or not summary:
        raise UpstreamError(
            "AI response has a blank title or summary",
            context={"title_blank": not title, "summary_blank": not summary},
        )

    raw_tags = data.get("tags")
    if isinstance(raw_tags, list):
        tags: List[str] = [
            tag.strip() for tag in raw_tags[:MAX_TAGS]
            if isinstance(tag, str) and tag.strip()
        ]
    else:
        tags = [content_type]

    return AnalysisResult.bounded(title=title, summary=summary, tags=tags)


# ══════════════════════════════════════════════════════════════════════════
# Gemini Analyzer
# ══════════════════════════════════════════════════════════════════════════

class GeminiAnalyzer(ContentAnalyzer):
    """
    Google Gemini implementation of ContentAnalyzer.

    Architecture:
        - One instance per process (created in create_app)
        - Two GenerativeModel objects: text and vision
        - The circuit breaker lives on the instance so its state is shared
          by every request the process serves

    Error Handling Chain:
        missing API key          → UpstreamError (breaker untouched)
        circuit open             → CircuitBreakerOpenError (an UpstreamError)
        fetch/SDK error, timeout → breaker failure, UpstreamError
        unusable reply           → UpstreamError (the call itself succeeded)
    """

    SYSTEM_INSTRUCTION = (
        "You are an intelligent content analyzer for personal notes in any domain, "
        "including images. Generate a clear, context-aware title that captures the "
        "main idea, a concise summary of the key points, and relevant searchable "
        "tags. For images, describe what you see and extract meaningful insights. "
        "Always respond in the same language as the user's input."
    )

    TEXT_PROMPT = """Analyze this {content_type} content and provide a JSON response with exactly this structure:

{{
  "title": "A smart, engaging title (max 8 words)",
  "summary": "A clear, concise summary (2-4 sentences) that captures the main points",
  "tags": ["array", "of", "relevant", "tags", "max", "10", "tags"]
}}

Content to analyze:
{preview}

Requirements:
- Title should be descriptive, engaging, and human-readable
- Summary should highlight the key insights
- Tags should include topics, categories, and relevant keywords
- Respond with the JSON object only"""

    IMAGE_PROMPT = """Analyze this image and provide a JSON response with exactly this structure:

{{
  "title": "A smart, engaging title describing the image (max 8 words)",
  "summary": "A clear, concise summary of what is in the image and why it matters (2-4 sentences)",
  "tags": ["array", "of", "relevant", "tags", "describing", "the", "image", "max", "10"]
}}

Additional context: {context}

Requirements:
- Title should describe what is in the image
- Summary should explain the image content and any visible text or important details
- Tags should include visual elements, objects, themes, and relevant keywords
- Respond with the JSON object only"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        text_model: Optional[str] = None,
        vision_model: Optional[str] = None,
        timeout: Optional[float] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_image_bytes: Optional[int] = None,
        image_hosts: Optional[List[str]] = None,
    ):
        self.api_key = settings.gemini_api_key if api_key is None else api_key
        self.text_model_name = text_model or settings.gemini_model
        self.vision_model_name = vision_model or settings.gemini_vision_model
        self.timeout = timeout or settings.ai_timeout_seconds
        self.max_image_bytes = max_image_bytes or settings.ai_max_image_bytes
        self.image_hosts = [
            host.lower()
            for host in (settings.ai_image_hosts_list if image_hosts is None else image_hosts)
        ]
        self._transport = transport

        if self.api_key:
            genai.configure(api_key=self.api_key)

        self.generation_config = {
            "max_output_tokens": settings.ai_max_output_tokens,
            "temperature": settings.ai_temperature,
        }
        self.text_model = genai.GenerativeModel(
            self.text_model_name, system_instruction=self.SYSTEM_INSTRUCTION
        )
        self.vision_model = genai.GenerativeModel(
            self.vision_model_name, system_instruction=self.SYSTEM_INSTRUCTION
        )

        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

        logger.info(
            "GeminiAnalyzer initialized with model=%s, vision_model=%s, "
            "timeout=%.0fs, circuit_breaker(threshold=%d, recovery=%ds)",
            self.text_model_name,
            self.vision_model_name,
            self.timeout,
            self.circuit_breaker.failure_threshold,
            self.circuit_breaker.recovery_timeout,
        )

    def model_name_for(self, request: AnalysisRequest) -> str:
        return self.vision_model_name if request.wants_vision else self.text_model_name

    async def run(self, request: AnalysisRequest) -> AnalysisResult:
        """
        Analyze one request with Gemini.

        Flow:
            1. Refuse without an API key or with a disallowed image URL
            2. Check circuit breaker → may raise CircuitBreakerOpenError
            3. Fetch image (vision only) and call Gemini, bounded by the timeout
            4. Record success/failure in circuit breaker
            5. Parse the reply into a bounded AnalysisResult

        Raises:
            UpstreamError: for every failure above.
        """
        if not self.api_key:
            raise UpstreamError("Gemini API key is not configured")
        if request.wants_vision:
            self.check_image_url(request.image_ref)

        self.circuit_breaker.can_execute()

        call_id = str(uuid.uuid4())[:8]
        model_name = self.model_name_for(request)
        start_time = time.time()

        try:
            text = await asyncio.wait_for(self._generate(request), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            self.circuit_breaker.record_failure()
            logger.warning(
                "[%s] Gemini call to %s timed out after %.0fs",
                call_id,
                model_name,
                self.timeout,
            )
            raise UpstreamError(
                "AI analysis timed out",
                context={"call_id": call_id, "timeout": self.timeout},
            ) from e
        except UpstreamError:
            self.circuit_breaker.record_failure()
            raise
        except Exception as e:
            self.circuit_breaker.record_failure()
            logger.warning(
                "[%s] Gemini call to %s failed: %s",
                call_id,
                model_name,
                str(e),
            )
            raise UpstreamError(
                "AI analysis request failed",
                context={"call_id": call_id, "error_type": type(e).__name__},
            ) from e

        self.circuit_breaker.record_success()

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "[%s] Gemini analysis with %s completed in %.0fms (%d chars)",
            call_id,
            model_name,
            duration_ms,
            len(text),
        )
        return parse_analysis(text, request.content_type.value)

    async def _generate(self, request: AnalysisRequest) -> str:
        prompt: List[Union[str, Dict[str, Any]]]
        if request.wants_vision:
            image = await self._fetch_image(request.image_ref)
            prompt = [self.IMAGE_PROMPT.format(context=request.content), image]
            model = self.vision_model
        else:
            prompt = [self.TEXT_PROMPT.format(
                content_type=request.content_type.value,
                preview=self._preview(request.content),
            )]
            model = self.text_model

        response = await model.generate_content_async(
            prompt, generation_config=self.generation_config
        )
        text = (response.text or "").strip()
        if not text:
            raise UpstreamError("AI returned an empty response")
        return text

    def check_image_url(self, image_ref: str) -> None:
        """
        Refuses image URLs the server must not fetch.

        Raises:
            UpstreamError: host outside AI_IMAGE_HOSTS (when configured),
                localhost, or a non-public IP literal.
        """
        host = (httpx.URL(image_ref).host or "").lower()
        if self.image_hosts and host not in self.image_hosts:
            raise UpstreamError("Image host is not allowed", context={"host": host})
        if not is_public_host(host):
            raise UpstreamError("Image host is not a public address", context={"host": host})

    async def _fetch_image(self, image_ref: str) -> Dict[str, Any]:
        """
        Downloads the image so it can be sent inline as a blob part.

        Redirects are not followed. The body is streamed and abandoned once it
        passes AI_MAX_IMAGE_BYTES.
        """
        data = bytearray()
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                async with client.stream("GET", image_ref) as response:
                    response.raise_for_status()

                    content_type = response.headers.get("content-type", "")
                    mime_type = content_type.split(";")[0].strip().lower()
                    if not mime_type.startswith("image/"):
                        raise UpstreamError(
                            "Image URL did not return an image",
                            context={"content_type": mime_type or None},
                        )

                    declared = response.headers.get("content-length", "")
                    if declared.isdigit() and int(declared) > self.max_image_bytes:
                        raise self._image_too_large(int(declared))

                    async for chunk in response.aiter_bytes():
                        data.extend(chunk)
                        if len(data) > self.max_image_bytes:
                            raise self._image_too_large(len(data))
        except httpx.HTTPError as e:
            raise UpstreamError(
                "Failed to fetch image for analysis",
                context={"error_type": type(e).__name__},
            ) from e

        return {"mime_type": mime_type, "data": bytes(data)}

    def _image_too_large(self, size: int) -> UpstreamError:
        return UpstreamError(
            "Image is too large for analysis",
            context={"bytes": size, "limit": self.max_image_bytes},
        )

    @staticmethod
    def _preview(content: str) -> str:
        if len(content) > CONTENT_PREVIEW_LENGTH:
            return content[:CONTENT_PREVIEW_LENGTH] + "..."
        return content

    async def health_check(self) -> bool:
        """
        Check if Gemini API is reachable.

        How:     Lists available models (no token cost).
        Returns: True if reachable and authenticated, False otherwise.
        """
        if not self.api_key:
            return False
        try:
            models = await asyncio.to_thread(lambda: [m.name for m in genai.list_models()])
        except Exception as e:
            logger.warning("Gemini health check failed: %s", str(e))
            return False

        target = f"models/{self.text_model_name}"
        if target not in models:
            logger.warning("Configured model %s not found in available models", target)
        return True
