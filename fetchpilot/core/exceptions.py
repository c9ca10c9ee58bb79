"""
Exception hierarchy for the extraction engine

Only ConfigurationError is allowed to escape a run; everything else is
raised at component boundaries and absorbed by the crawl loop.
"""


class FetchPilotError(Exception):
    """Base class for all engine errors"""


class ConfigurationError(FetchPilotError):
    """Invalid run options or missing hard prerequisites (raised before the crawl starts)"""


class FetchError(FetchPilotError):
    """Transport failure while fetching a page (DNS, timeout, connection reset)"""

    def __init__(self, url: str, message: str):
        super().__init__(f"Failed to fetch {url}: {message}")
        self.url = url


class RenderError(FetchPilotError):
    """Browser renderer failed to return a page"""


class LLMError(FetchPilotError):
    """LLM provider call failed or returned no usable text"""


class ResponseParseError(FetchPilotError):
    """No JSON payload could be recovered from model output"""
