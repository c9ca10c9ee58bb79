"""Tests for LLM provider selection, run options and environment settings."""

import pytest

from fetchpilot.core.browser_fetcher import RemoteBrowserClient
from fetchpilot.core.config import RunOptions, Settings, validate_start_url
from fetchpilot.core.exceptions import ConfigurationError, LLMError
from fetchpilot.core.llm_client import LLMClient, LLMConfig, get_provider
from fetchpilot.core.models import Selectors


class TestLLMConfig:
    def test_providers_are_registered(self):
        assert get_provider("Anthropic").name == "anthropic"
        assert get_provider("openai").default_model == "gpt-4o-mini"
        assert get_provider("ollama").requires_api_key is False

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError):
            get_provider("nope")
        assert LLMConfig(provider="nope").has_credentials() is False

    def test_credentials(self):
        assert LLMConfig(provider="anthropic").has_credentials() is False
        assert LLMConfig(provider="anthropic", api_key="k").has_credentials() is True
        assert LLMConfig(provider="ollama").has_credentials() is True

    def test_validate_requires_key_for_cloud_provider(self):
        with pytest.raises(ConfigurationError, match="ANTHROPIC_API_KEY"):
            LLMConfig(provider="anthropic").validate()

    def test_model_prefix_not_doubled(self):
        config = LLMConfig(provider="openai", api_key="k", model="openai/gpt-4o")
        assert config.backend.completion_kwargs(config)["model"] == "openai/gpt-4o"


class TestLLMClient:
    async def test_passes_timeout_and_retries(self, fake_litellm):
        fake_litellm.reply = "ok"
        client = LLMClient(LLMConfig(provider="anthropic", api_key="k", timeout=5, max_retries=1))
        assert await client.complete("sys", "user") == "ok"

        [call] = fake_litellm.calls
        assert call["timeout"] == 5
        assert call["num_retries"] == 1
        assert call["messages"][0] == {"role": "system", "content": "sys"}

    async def test_empty_reply_is_an_error(self, fake_litellm):
        fake_litellm.reply = "   "
        with pytest.raises(LLMError):
            await LLMClient(LLMConfig(provider="anthropic", api_key="k")).complete("s", "u")

    async def test_transport_errors_are_wrapped(self, fake_litellm):
        fake_litellm.reply = TimeoutError("slow")
        with pytest.raises(LLMError, match="slow"):
            await LLMClient(LLMConfig(provider="anthropic", api_key="k")).complete("s", "u")


class TestRunOptions:
    def test_defaults_with_key_are_valid(self):
        RunOptions(llm=LLMConfig(api_key="k")).validate()

    @pytest.mark.parametrize("pages", [0, 51])
    def test_page_budget_bounds(self, pages):
        with pytest.raises(ConfigurationError):
            RunOptions(llm=LLMConfig(api_key="k"), max_total_pages=pages).validate()

    def test_missing_key_without_custom_selectors(self):
        with pytest.raises(ConfigurationError):
            RunOptions(llm=LLMConfig()).validate()

    def test_missing_key_allowed_with_custom_selectors(self):
        RunOptions(llm=LLMConfig(), custom_selectors=Selectors(item=".card", title="h2")).validate()

    def test_unknown_provider_always_fails(self):
        options = RunOptions(llm=LLMConfig(provider="nope"), custom_selectors=Selectors(item=".card"))
        with pytest.raises(ConfigurationError):
            options.validate()

    @pytest.mark.parametrize("seconds", [0, -1])
    def test_render_timeout_must_be_positive(self, seconds):
        with pytest.raises(ConfigurationError, match="render_timeout"):
            RunOptions(llm=LLMConfig(api_key="k"), render_timeout=seconds).validate()

    @pytest.mark.parametrize("url", ["", "/relative", "ftp://shop.test/x", "https://"])
    def test_start_url_must_be_absolute_http(self, url):
        with pytest.raises(ConfigurationError):
            validate_start_url(url)


class TestSettings:
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("LLM_PROVIDER", "OpenAI")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setenv("FETCHPILOT_MAX_PAGES", "7")
        monkeypatch.setenv("FETCHPILOT_LOG_LEVEL", "debug")
        monkeypatch.delenv("BROWSER_WORKER_URL", raising=False)

        settings = Settings.from_env()
        options = settings.run_options()

        assert settings.log_level == "DEBUG"
        assert options.max_total_pages == 7
        assert options.llm.provider == "openai"
        assert options.llm.api_key == "sk-test"
        assert options.browser is None

    def test_ollama_defaults(self, monkeypatch):
        monkeypatch.setenv("LLM_PROVIDER", "ollama")
        monkeypatch.delenv("OLLAMA_BASE_URL", raising=False)
        monkeypatch.delenv("OLLAMA_MODEL", raising=False)
        monkeypatch.delenv("LLM_MODEL", raising=False)

        llm = Settings.from_env().llm_config()
        assert llm.base_url == "http://localhost:11434"
        assert llm.model == "llama3.3"

    def test_browser_worker_url_enables_remote_renderer(self, monkeypatch):
        monkeypatch.setenv("BROWSER_WORKER_URL", "http://worker.test/render")
        options = Settings.from_env().run_options()
        assert isinstance(options.browser, RemoteBrowserClient)
        assert options.browser.worker_url == "http://worker.test/render"

    def test_overrides_win(self, monkeypatch):
        monkeypatch.delenv("BROWSER_WORKER_URL", raising=False)
        options = Settings().run_options(max_total_pages=3, run_id="fixed")
        assert options.max_total_pages == 3
        assert options.run_id == "fixed"

    def test_bad_number_is_a_configuration_error(self, monkeypatch):
        monkeypatch.setenv("FETCHPILOT_MAX_PAGES", "lots")
        with pytest.raises(ConfigurationError):
            Settings.from_env()

    def test_render_timeout_from_env(self, monkeypatch):
        monkeypatch.setenv("FETCHPILOT_RENDER_TIMEOUT", "12.5")
        monkeypatch.setenv("BROWSER_WORKER_URL", "http://worker.test/render")
        settings = Settings.from_env()

        assert settings.render_timeout == 12.5
        assert settings.run_options().render_timeout == 12.5
        assert settings.browser_client().timeout == 12.5

    def test_no_browser_client_without_worker_url(self):
        assert Settings().browser_client() is None

    def test_shared_browser_is_reused_across_runs(self):
        settings = Settings(browser_worker_url="http://worker.test/render")
        shared = settings.browser_client()

        first = settings.run_options(browser=shared)
        second = settings.run_options(browser=shared)
        assert first.browser is shared
        assert second.browser is shared
        shared.close()
