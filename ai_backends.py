"""
Summarization backend adapters.

Each adapter turns the sprint context into one backend request and pulls the
narrative out of the backend's response envelope:

- GeminiBackend: Google Gemini generateContent API (cloud)
- OllamaBackend: local Ollama server (/api/generate)
- RuleBasedBackend: deterministic summary, no network

Failures are reported as BackendNotConfigured (nothing to call) or
BackendUnavailable (the call was made and did not produce text).
"""

import json
import time
from typing import Any, Dict, List, Optional

import requests

from sprint_config import AIConfig, create_ai_session
from sprint_models import Backend, EnrichedSprintData
from sprint_rule_summary import generate_rule_based_summary
from sprint_security import get_safe_logger

logger = get_safe_logger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"
TEMPERATURE = 0.5
TOP_P = 0.85
MAX_OUTPUT_TOKENS = 1000

SUMMARY_PROMPT = """You are an experienced Agile coach reviewing a developer's personal sprint report. Read the sprint data below and write a SHORT, insightful summary.

## OUTPUT FORMAT (use exactly these section headers):

## 🎯 Sprint Summary
- 1-4 bullets: what was delivered (mention issue keys)
- Completion rate and anything notable

## ⚠️ Problem Areas
- Only issues that really struggled (QA returns, blockers, overtime)
- Format: **ISSUE-KEY**: one line on what went wrong
- Leave this section out if there were no problems

## 🐛 Quality Issues
- Bugs found or QA returns (at most 4 items)
- Leave out if none

## 💡 Key Insight
- The ONE most important observation from the workflow history or comments
- Name the root cause, not the symptom

## 📋 Action Item
- Concrete recommendations for the next sprint
- Actionable, never generic

## RULES:
- 2-4 bullets per section at most
- Refer to issues by key (e.g., PROJ-123)
- Leave out empty sections entirely
- Total response under 600 words
- No generic advice, only insights backed by the data

SPRINT DATA:
{context}

ANALYSIS:"""


class BackendError(Exception):
    """Base class for summarization backend failures."""

    def __init__(self, backend: Backend, message: str):
        super().__init__(message)
        self.backend = backend


class BackendNotConfigured(BackendError):
    """The backend lacks the configuration it needs; it was not called."""


class BackendUnavailable(BackendError):
    """The backend was called but returned an error or no usable text."""


def build_prompt(context: str) -> str:
    return SUMMARY_PROMPT.format(context=context)


def _error_excerpt(resp: requests.Response, limit: int = 200) -> str:
    try:
        text = resp.text or ''
    except Exception:
        text = '<no-body>'
    return (text[:limit] + '...') if len(text) > limit else text


class GeminiBackend:
    """Google Gemini (cloud) adapter."""

    name = Backend.GEMINI

    def __init__(self, config: AIConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or create_ai_session()

    def is_configured(self) -> bool:
        return bool(self.config.gemini_api_key)

    @property
    def url(self) -> str:
        return f"{GEMINI_API_BASE}/{self.config.gemini_model}:generateContent"

    def build_payload(self, context: str) -> Dict[str, Any]:
        return {
            "contents": [{"parts": [{"text": build_prompt(context)}]}],
            "generationConfig": {
                "temperature": TEMPERATURE,
                "maxOutputTokens": MAX_OUTPUT_TOKENS,
                "topP": TOP_P,
            },
            "safetySettings": [
                {"category": category, "threshold": "BLOCK_NONE"}
                for category in (
                    "HARM_CATEGORY_HARASSMENT",
                    "HARM_CATEGORY_HATE_SPEECH",
                    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
                    "HARM_CATEGORY_DANGEROUS_CONTENT",
                )
            ],
        }

    @staticmethod
    def extract_text(result: Any) -> Optional[str]:
        """Return candidates[0].content.parts[0].text, or None if absent."""
        try:
            text = result["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            return None
        return text if isinstance(text, str) and text.strip() else None

    def summarize(self, data: EnrichedSprintData, context: str) -> str:
        if not self.is_configured():
            raise BackendNotConfigured(self.name, "GEMINI_API_KEY not configured")

        logger.debug("POST %s (model %s)", self.url, self.config.gemini_model)
        try:
            resp = self.session.post(
                self.url,
                json=self.build_payload(context),
                headers={"x-goog-api-key": self.config.gemini_api_key},
                timeout=self.config.request_timeout,
            )
        except requests.exceptions.RequestException as e:
            raise BackendUnavailable(self.name, f"Gemini request error: {e}") from e

        if not resp.ok:
            raise BackendUnavailable(self.name, f"Gemini request failed: {resp.status_code} - {_error_excerpt(resp)}")

        try:
            result = resp.json()
        except ValueError as e:
            raise BackendUnavailable(self.name, "Gemini returned invalid JSON") from e

        text = self.extract_text(result)
        if text is None:
            raise BackendUnavailable(self.name, "No content in Gemini response")
        return text


class OllamaBackend:
    """Local Ollama server adapter."""

    name = Backend.OLLAMA

    def __init__(self, config: AIConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or create_ai_session()

    def is_configured(self) -> bool:
        return bool(self.config.ollama_url and self.config.ollama_model)

    def build_payload(self, context: str) -> Dict[str, Any]:
        return {
            "model": self.config.ollama_model,
            "prompt": build_prompt(context),
            "stream": False,
            "options": {
                "temperature": TEMPERATURE,
                "num_predict": MAX_OUTPUT_TOKENS,
                "top_p": TOP_P,
            },
        }

    def summarize(self, data: EnrichedSprintData, context: str) -> str:
        if not self.is_configured():
            raise BackendNotConfigured(self.name, "OLLAMA_URL or OLLAMA_MODEL not configured")

        url = f"{self.config.ollama_url}/api/generate"
        logger.debug("POST %s (model %s)", url, self.config.ollama_model)
        try:
            resp = self.session.post(url, json=self.build_payload(context), timeout=self.config.request_timeout)
        except requests.exceptions.RequestException as e:
            raise BackendUnavailable(self.name, f"Ollama request error: {e}") from e

        if not resp.ok:
            raise BackendUnavailable(self.name, f"Ollama request failed: {resp.status_code}")

        try:
            result = resp.json()
        except ValueError as e:
            raise BackendUnavailable(self.name, "Ollama returned invalid JSON") from e

        text = result.get("response") if isinstance(result, dict) else None
        if not isinstance(text, str) or not text.strip():
            raise BackendUnavailable(self.name, "No content in Ollama response")
        return text

    def list_models(self, timeout: Optional[float] = None) -> List[str]:
        """Return the locally installed model names (liveness check).

        requests timeouts apply per socket operation, so the body is streamed
        and the whole call is cut off once ``timeout`` seconds have passed.

        Raises:
            BackendUnavailable: If the server can't be reached in time or
                answers with a non-success status
        """
        url = f"{self.config.ollama_url}/api/tags"
        timeout = timeout or self.config.status_timeout
        deadline = time.monotonic() + timeout
        try:
            with self.session.get(url, timeout=(timeout, timeout), stream=True) as resp:
                if not resp.ok:
                    raise BackendUnavailable(self.name, f"HTTP {resp.status_code}")
                body = bytearray()
                for chunk in resp.iter_content(chunk_size=8192):
                    body.extend(chunk)
                    if time.monotonic() > deadline:
                        raise BackendUnavailable(self.name, "Not running")
        except requests.exceptions.RequestException as e:
            raise BackendUnavailable(self.name, "Not running") from e

        try:
            data = json.loads(body.decode("utf-8"))
        except ValueError:
            data = {}
        models = data.get("models") if isinstance(data, dict) else None
        return [m.get("name") for m in models or [] if isinstance(m, dict) and m.get("name")]


class RuleBasedBackend:
    """Deterministic fallback; ignores the model context and never fails."""

    name = Backend.RULE_BASED

    def is_configured(self) -> bool:
        return True

    def summarize(self, data: EnrichedSprintData, context: str) -> str:
        return generate_rule_based_summary(data)
