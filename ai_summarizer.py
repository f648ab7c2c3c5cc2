"""
Sprint summary generation with backend fallback.

generate_summary() tries the configured backends one after another (cloud,
local, then the rule-based fallback, with an optional preferred backend
moved to the front) and returns the first narrative produced. Backend
failures are logged and never reach the caller; the only error raised is
SprintDataError for missing sprint data.

get_backend_status() reports which backends look usable, for display. It
uses the same configuration checks but makes no promise that a backend
reported available will succeed when asked to summarize.
"""

from typing import Any, Dict, List, Optional, Union

import requests

from ai_backends import (
    BackendError,
    BackendUnavailable,
    GeminiBackend,
    OllamaBackend,
    RuleBasedBackend,
)
from sprint_config import AIConfig, create_ai_session, load_ai_config
from sprint_context import build_sprint_context
from sprint_models import (
    AIStatus,
    Backend,
    BackendStatus,
    EnrichedSprintData,
    SprintDataError,
    SummaryResult,
)
from sprint_rule_summary import generate_rule_based_summary
from sprint_security import get_safe_logger

logger = get_safe_logger(__name__)

DEFAULT_BACKEND_ORDER = (Backend.GEMINI, Backend.OLLAMA, Backend.RULE_BASED)

# Anything this short can't be a real Gemini API key
MIN_API_KEY_LENGTH = 20


def coerce_sprint_data(data: Union[EnrichedSprintData, Dict[str, Any], None]) -> EnrichedSprintData:
    """Accept EnrichedSprintData or its JSON dict form.

    Raises:
        SprintDataError: If data or its sprint is missing
    """
    if isinstance(data, EnrichedSprintData):
        return data
    return EnrichedSprintData.from_dict(data)


class SprintSummarizer:
    """Runs the backend fallback chain for sprint summaries.

    Args:
        config: AI backend settings (see sprint_config.load_ai_config)
        session: Optional requests session shared by the HTTP backends
        backends: Optional adapter overrides keyed by Backend, mainly for tests
    """

    def __init__(
        self,
        config: AIConfig,
        session: Optional[requests.Session] = None,
        backends: Optional[Dict[Backend, Any]] = None,
    ):
        self.config = config
        session = session or create_ai_session()
        self.backends: Dict[Backend, Any] = {
            Backend.GEMINI: GeminiBackend(config, session),
            Backend.OLLAMA: OllamaBackend(config, session),
            Backend.RULE_BASED: RuleBasedBackend(),
        }
        if backends:
            self.backends.update(backends)

    def backend_order(self, preferred: Union[Backend, str, None] = None) -> List[Backend]:
        """Priority order for one request: preferred first, then the defaults, no repeats."""
        order: List[Backend] = []
        if preferred is not None:
            backend = Backend.parse(preferred)
            if backend is None:
                logger.warning("Ignoring unknown preferred backend %r", preferred)
            else:
                order.append(backend)
        for backend in DEFAULT_BACKEND_ORDER:
            if backend not in order:
                order.append(backend)
        return order

    def generate_summary(
        self,
        data: Union[EnrichedSprintData, Dict[str, Any], None],
        preferred: Union[Backend, str, None] = None,
    ) -> SummaryResult:
        """Summarize a sprint with the first backend that succeeds.

        Args:
            data: Enriched sprint data (dataclass or JSON dict)
            preferred: Optional backend name to try first

        Returns:
            SummaryResult tagged with the backend that produced it

        Raises:
            SprintDataError: If the sprint data is missing or malformed; no backend is tried
        """
        data = coerce_sprint_data(data)
        context = build_sprint_context(data)

        for backend in self.backend_order(preferred):
            adapter = self.backends[backend]
            if not adapter.is_configured():
                logger.info("Skipping %s: not configured", backend.value)
                continue
            try:
                summary = adapter.summarize(data, context)
            except BackendError as e:
                logger.warning("%s failed: %s", backend.value, e)
                continue
            except Exception as e:
                # The rule-based summary does not fail on valid data
                if backend is Backend.RULE_BASED:
                    raise
                logger.warning("%s failed unexpectedly: %s: %s", backend.value, type(e).__name__, e)
                continue
            logger.info("Sprint summary generated by %s", backend.value)
            return SummaryResult(summary=summary, source=backend)

        logger.warning("All backends failed, using rule-based summary")
        return SummaryResult(summary=generate_rule_based_summary(data), source=Backend.RULE_BASED)

    def _gemini_status(self) -> BackendStatus:
        key = self.config.gemini_api_key or ""
        if not key:
            return BackendStatus(Backend.GEMINI, available=False, reason="API key not configured")
        if len(key) <= MIN_API_KEY_LENGTH:
            return BackendStatus(Backend.GEMINI, available=False, reason="API key looks invalid")
        return BackendStatus(Backend.GEMINI, available=True, model=self.config.gemini_model)

    def _ollama_status(self) -> BackendStatus:
        adapter = self.backends[Backend.OLLAMA]
        try:
            models = adapter.list_models(timeout=self.config.status_timeout)
        except BackendUnavailable as e:
            logger.debug("Ollama status check failed: %s", e)
            return BackendStatus(Backend.OLLAMA, available=False, reason=str(e))
        return BackendStatus(Backend.OLLAMA, available=True, models=models)

    def get_backend_status(self) -> AIStatus:
        """Report availability of every backend; never raises."""
        return AIStatus(providers=[
            self._gemini_status(),
            self._ollama_status(),
            BackendStatus(Backend.RULE_BASED, available=True),
        ])


def generate_summary(
    data: Union[EnrichedSprintData, Dict[str, Any], None],
    preferred: Union[Backend, str, None] = None,
    config: Optional[AIConfig] = None,
) -> SummaryResult:
    """Convenience wrapper: summarize with settings from load_ai_config()."""
    return SprintSummarizer(config or load_ai_config()).generate_summary(data, preferred)


def get_backend_status(config: Optional[AIConfig] = None) -> AIStatus:
    """Convenience wrapper: check backends with settings from load_ai_config()."""
    return SprintSummarizer(config or load_ai_config()).get_backend_status()
