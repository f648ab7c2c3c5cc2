"""
Shared helpers for loading Jira and AI backend configuration.

Settings come from the process environment and from the export-style
.jira_environment file next to these modules. AI backend settings are read
once into an AIConfig value that is passed explicitly to the summarizer.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional, Union

import requests
from requests.adapters import HTTPAdapter
from urllib3.util import Retry

from sprint_security import get_safe_logger

BASE_DIR = Path(__file__).resolve().parent
DEFAULT_ENV_PATH = BASE_DIR / ".jira_environment"

ATLASSIAN_API_BASE = "https://api.atlassian.com/ex/jira"
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash-lite"
DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "llama3.2"
DEFAULT_AI_TIMEOUT = 60.0
STATUS_CHECK_TIMEOUT = 3.0

logger = get_safe_logger(__name__)


def _parse_line(line: str, data: Dict[str, str]) -> None:
    """Parse a single export-style line into the provided dict."""
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return
    if stripped.startswith("export "):
        stripped = stripped[len("export ") :].strip()
    if "=" not in stripped:
        return
    key, value = stripped.split("=", 1)
    data[key.strip()] = value.strip().strip('"').strip("'")


@lru_cache(maxsize=4)
def load_jira_env(env_path: Optional[Path] = None) -> Dict[str, str]:
    """Return the parsed variables from .jira_environment."""
    path = Path(env_path) if env_path else DEFAULT_ENV_PATH
    env: Dict[str, str] = {}
    if path.exists():
        with path.open() as fh:
            for line in fh:
                _parse_line(line, env)
    return env


def get_jira_setting(key: str, default: Optional[str] = None, env_path: Optional[Path] = None) -> Optional[str]:
    """Convenience accessor for a single config value from the file."""
    env = load_jira_env(env_path=env_path)
    return env.get(key, default)


def get_setting(key: str, default: Optional[str] = None, env_path: Optional[Path] = None) -> Optional[str]:
    """Return a setting, preferring the process environment over the file.

    Empty values count as unset.
    """
    value = os.environ.get(key)
    if not value:
        value = get_jira_setting(key, env_path=env_path)
    return value or default


SSL_OFF_VALUES = ('false', '0', 'no', 'off', 'disabled')
SSL_ON_VALUES = ('true', '1', 'yes', 'on', 'enabled')


def resolve_ssl_verify(value: Optional[str]) -> Union[bool, str]:
    """Turn a JT_SSL_VERIFY style value into the requests ``verify`` argument.

    Empty and truthy values mean standard verification. Anything else is a CA
    bundle path (e.g. a Zscaler certificate), relative paths being taken from
    the directory of these modules. A bundle that can't be found is reported
    and standard verification is used instead.

    Raises:
        ValueError: If the value asks to switch verification off
    """
    if not value or value.strip().lower() in SSL_ON_VALUES:
        return True
    if value.strip().lower() in SSL_OFF_VALUES:
        raise ValueError(
            f"JT_SSL_VERIFY={value!r} is not supported: SSL verification cannot be disabled.\n"
            "Use JT_SSL_VERIFY=true, or JT_SSL_VERIFY=/path/to/ca-bundle.pem for a custom CA, "
            "in the environment or in .jira_environment."
        )

    bundle = Path(value.strip()).expanduser()
    if not bundle.is_absolute():
        bundle = BASE_DIR / bundle
    if bundle.exists():
        return str(bundle.resolve())

    logger.warning("CA bundle %s does not exist, using standard SSL verification", bundle)
    return True


@dataclass(frozen=True)
class JiraConnection:
    """Where and how to reach Jira.

    A bearer token plus cloud id (as handed out by an Atlassian OAuth login)
    takes precedence over basic auth against JT_JIRA_URL. ``ssl_verify`` is
    passed as-is to requests and translated for aiohttp by the enrichment
    step.
    """

    base_url: str
    username: Optional[str] = None
    api_token: Optional[str] = None
    bearer_token: Optional[str] = None
    ssl_verify: Union[bool, str] = True

    @property
    def basic_auth(self):
        if self.username and self.api_token:
            return (self.username, self.api_token)
        return None

    def auth_headers(self) -> Dict[str, str]:
        if self.bearer_token:
            return {"Authorization": f"Bearer {self.bearer_token}"}
        return {}


def load_jira_connection() -> JiraConnection:
    """Build the Jira connection settings from environment and file.

    JT_SSL_VERIFY (environment, then file) decides SSL verification; a shell
    REQUESTS_CA_BUNDLE is only used when JT_SSL_VERIFY is unset.

    Raises:
        ValueError: If no Jira location is configured or SSL verification
            is switched off
    """
    ssl_verify = resolve_ssl_verify(get_setting("JT_SSL_VERIFY") or os.environ.get("REQUESTS_CA_BUNDLE"))

    bearer = get_setting("JT_JIRA_BEARER_TOKEN")
    cloud_id = get_setting("JT_JIRA_CLOUD_ID")
    if bearer and cloud_id:
        return JiraConnection(base_url=f"{ATLASSIAN_API_BASE}/{cloud_id}", bearer_token=bearer,
                              ssl_verify=ssl_verify)

    base_url = (get_setting("JT_JIRA_URL") or "").rstrip("/")
    if not base_url:
        raise ValueError("JT_JIRA_URL is not configured (or set JT_JIRA_BEARER_TOKEN and JT_JIRA_CLOUD_ID)")
    return JiraConnection(
        base_url=base_url,
        username=get_setting("JT_JIRA_USERNAME"),
        api_token=get_setting("JT_JIRA_PASSWORD"),
        ssl_verify=ssl_verify,
    )


JIRA_RETRY = Retry(
    total=4,
    backoff_factor=1.0,
    status_forcelist=[500, 502, 503, 504, 429],
    allowed_methods=["GET", "POST"],
    raise_on_status=False,
)


def build_jira_session(connection: JiraConnection) -> requests.Session:
    """Create a requests.Session for one Jira connection.

    Sprint and issue-list reads retry on 429/5xx and network errors with
    exponential backoff (1s, 2s, 4s, 8s); the caller still sees the final
    status. Up to 20 connections per host are pooled.
    """
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=JIRA_RETRY, pool_connections=10, pool_maxsize=20)
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    if connection.basic_auth:
        session.auth = connection.basic_auth
    session.headers.update(connection.auth_headers())
    session.headers["Accept"] = "application/json"
    session.verify = connection.ssl_verify

    logger.debug("Jira session for %s (verify=%s)", connection.base_url, connection.ssl_verify)
    return session


@lru_cache(maxsize=1)
def get_jira_session() -> requests.Session:
    """Process-wide Jira session for the configured connection.

    Example:
        >>> resp = get_jira_session().get(url, timeout=15)
    """
    return build_jira_session(load_jira_connection())


def create_ai_session() -> requests.Session:
    """Return a requests.Session for the summarization backends.

    Unlike the Jira session this one never retries: a failed backend call
    moves on to the next backend instead.
    """
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=0)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers["Content-Type"] = "application/json"
    return session


@dataclass(frozen=True)
class AIConfig:
    gemini_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_GEMINI_MODEL
    ollama_url: str = DEFAULT_OLLAMA_URL
    ollama_model: str = DEFAULT_OLLAMA_MODEL
    request_timeout: float = DEFAULT_AI_TIMEOUT
    status_timeout: float = STATUS_CHECK_TIMEOUT

    def __repr__(self) -> str:
        key_state = "set" if self.gemini_api_key else "unset"
        return (f"AIConfig(gemini_api_key=<{key_state}>, gemini_model={self.gemini_model!r}, "
                f"ollama_url={self.ollama_url!r}, ollama_model={self.ollama_model!r})")


def load_ai_config(env_path: Optional[Path] = None) -> AIConfig:
    """Read the AI backend settings once.

    Recognized settings: GEMINI_API_KEY, GEMINI_MODEL, OLLAMA_URL,
    OLLAMA_MODEL and JT_AI_TIMEOUT (seconds). A missing GEMINI_API_KEY
    disables only the cloud backend.
    """
    timeout = get_setting("JT_AI_TIMEOUT", env_path=env_path)
    try:
        request_timeout = float(timeout) if timeout else DEFAULT_AI_TIMEOUT
    except ValueError:
        logger.warning("Ignoring invalid JT_AI_TIMEOUT value %r", timeout)
        request_timeout = DEFAULT_AI_TIMEOUT

    return AIConfig(
        gemini_api_key=get_setting("GEMINI_API_KEY", env_path=env_path),
        gemini_model=get_setting("GEMINI_MODEL", DEFAULT_GEMINI_MODEL, env_path=env_path),
        ollama_url=(get_setting("OLLAMA_URL", DEFAULT_OLLAMA_URL, env_path=env_path)).rstrip("/"),
        ollama_model=get_setting("OLLAMA_MODEL", DEFAULT_OLLAMA_MODEL, env_path=env_path),
        request_timeout=request_timeout,
    )
