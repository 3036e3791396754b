"""
NoteWise Backend — Abstract Content Analyzer Interface
=======================================================

What:  Abstract base class for AI-backed content analyzers.
How:   Concrete implementations inherit from ContentAnalyzer and implement run().
Who:   AnalysisService holds one instance and falls back to LocalAnalyzer when
       it raises.

Contract:
    run() either returns a bounded AnalysisResult or raises UpstreamError.
    AnalysisService catches every exception from run(), so an implementation
    never needs to translate errors for the HTTP layer.
"""

from abc import ABC, abstractmethod

from notewise.schemas.analysis import AnalysisRequest, AnalysisResult


class ContentAnalyzer(ABC):
    """
    Interface for model-backed note analysis.

    Implementations:
        - GeminiAnalyzer: Google Gemini (text and inline-image prompts)
    """

    @abstractmethod
    async def run(self, request: AnalysisRequest) -> AnalysisResult:
        """
        Produce a title, summary and tags for one piece of content.

        Args:
            request: Validated analysis request.

        Returns:
            AnalysisResult with every field within its bound.

        Raises:
            UpstreamError: The provider failed, timed out, or returned a
                response that is not the expected JSON object.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the provider is reachable. Never raises.

        Who:     Called by the health check endpoint.
        Returns: True if the provider answered, False otherwise.
        """
        ...
