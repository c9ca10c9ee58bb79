"""
Run configuration

RunOptions carries everything one run needs; Settings builds them from the
environment for the CLI and scripts.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import urlparse

from .browser_fetcher import RemoteBrowserClient
from .exceptions import ConfigurationError
from .llm_client import LLMConfig, OllamaProvider, get_provider
from .models import Selectors

logger = logging.getLogger(__name__)

MIN_TOTAL_PAGES = 1
MAX_TOTAL_PAGES = 50
DEFAULT_TOTAL_PAGES = 12


@dataclass
class RunOptions:
    """
    Options for a single crawl run

    Attributes:
        llm: Provider + credentials for decisions and direct extraction
        max_total_pages: Page budget (1-50)
        custom_selectors: Caller-supplied selectors tried before anything else
        browser: Optional renderer (BrowserClient) used when a strategy asks for BROWSER mode
        event_sink: Receives typed lifecycle events (fire-and-forget)
        run_id: Correlation id; generated when omitted
        cancel_event: Anything with is_set(); checked between pages
        classification_cache: Advisory cache shared with the downstream classifier
        retry_base_delay: Base delay in seconds for renderer retries
        render_timeout: Upper bound in seconds for one renderer attempt
    """

    llm: LLMConfig = field(default_factory=LLMConfig)
    max_total_pages: int = DEFAULT_TOTAL_PAGES
    custom_selectors: Optional[Selectors] = None
    browser: Optional[Any] = None
    event_sink: Optional[Any] = None
    run_id: Optional[str] = None
    cancel_event: Optional[Any] = None
    classification_cache: Optional[Any] = None
    retry_base_delay: float = 0.5
    render_timeout: float = 90.0

    def validate(self) -> None:
        if not MIN_TOTAL_PAGES <= self.max_total_pages <= MAX_TOTAL_PAGES:
            raise ConfigurationError(
                f"max_total_pages must be between {MIN_TOTAL_PAGES} and {MAX_TOTAL_PAGES}, "
                f"got {self.max_total_pages}"
            )
        if self.retry_base_delay < 0:
            raise ConfigurationError("retry_base_delay must be >= 0")
        if self.render_timeout <= 0:
            raise ConfigurationError("render_timeout must be > 0 seconds")

        # Unknown provider is fatal even when custom selectors are present
        get_provider(self.llm.provider)

        has_custom = self.custom_selectors is not None and self.custom_selectors.is_usable()
        try:
            self.llm.validate()
        except ConfigurationError:
            # Custom selectors can carry a run on their own; decisions then fail per page
            if not has_custom:
                raise
            logger.warning(" LLM credentials missing; relying on custom selectors only")


def validate_start_url(url: str) -> None:
    parsed = urlparse(url or '')
    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        raise ConfigurationError(f"start URL must be an absolute http(s) URL, got {url!r}")


@dataclass
class Settings:
    """Environment-derived defaults"""

    llm_provider: str = "anthropic"
    llm_model: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    ollama_base_url: str = OllamaProvider.default_base_url
    ollama_model: str = OllamaProvider.default_model
    browser_worker_url: Optional[str] = None
    max_total_pages: int = DEFAULT_TOTAL_PAGES
    request_timeout: float = 30.0
    llm_timeout: float = 60.0
    render_timeout: float = 90.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables (all optional)"""

        def _get(name: str, default: Optional[str] = None) -> Optional[str]:
            value = os.getenv(name)
            return value if value not in (None, '') else default

        try:
            return cls(
                llm_provider=_get('LLM_PROVIDER', 'anthropic').lower(),
                llm_model=_get('LLM_MODEL'),
                anthropic_api_key=_get('ANTHROPIC_API_KEY'),
                openai_api_key=_get('OPENAI_API_KEY'),
                ollama_base_url=_get('OLLAMA_BASE_URL', OllamaProvider.default_base_url),
                ollama_model=_get('OLLAMA_MODEL', OllamaProvider.default_model),
                browser_worker_url=_get('BROWSER_WORKER_URL'),
                max_total_pages=int(_get('FETCHPILOT_MAX_PAGES', str(DEFAULT_TOTAL_PAGES))),
                request_timeout=float(_get('FETCHPILOT_REQUEST_TIMEOUT', '30')),
                llm_timeout=float(_get('FETCHPILOT_LLM_TIMEOUT', '60')),
                render_timeout=float(_get('FETCHPILOT_RENDER_TIMEOUT', '90')),
                log_level=_get('FETCHPILOT_LOG_LEVEL', 'INFO').upper(),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric environment setting: {e}") from e

    def llm_config(self, provider: Optional[str] = None, model: Optional[str] = None) -> LLMConfig:
        provider = (provider or self.llm_provider).lower()
        if provider == 'ollama':
            return LLMConfig(
                provider='ollama',
                model=model or self.llm_model or self.ollama_model,
                base_url=self.ollama_base_url,
                timeout=self.llm_timeout,
            )
        api_key = self.openai_api_key if provider == 'openai' else self.anthropic_api_key
        return LLMConfig(
            provider=provider,
            api_key=api_key,
            model=model or self.llm_model,
            timeout=self.llm_timeout,
        )

    def browser_client(self) -> Optional[RemoteBrowserClient]:
        """Remote renderer for BROWSER_WORKER_URL; the caller owns and closes it"""
        if not self.browser_worker_url:
            return None
        return RemoteBrowserClient(self.browser_worker_url, timeout=self.render_timeout)

    def run_options(self, **overrides) -> RunOptions:
        """
        RunOptions from these settings; keyword overrides win

        A remote renderer is built only when no browser override is given;
        pass browser= to share one client across runs.
        """
        options = {
            'llm': self.llm_config(),
            'max_total_pages': self.max_total_pages,
            'render_timeout': self.render_timeout,
        }
        if 'browser' not in overrides:
            options['browser'] = self.browser_client()
        options.update(overrides)
        return RunOptions(**options)
