"""Base model client interface and the model-call error taxonomy.

Defines the contract every model client (HTTP chat-completions, Mock) must
satisfy: one prompt in, raw text out. Clients know nothing about
diagnostics, guidance stages or retry — the orchestrator owns scheduling
and retry, the translator owns interpretation.

Tier 1 leaf — imports only stdlib and codecoach.models (also Tier 1).
No schemas, no config, no framework imports.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from codecoach.models import ModelConfig

__all__ = [
    "AIProvider",
    "ConfigurationError",
    "EndpointNotFoundError",
    "JobSupersededError",
    "MalformedResponseError",
    "ModelCallError",
    "ModelConfig",
    "ModelHTTPError",
    "ModelTransportError",
    "UsageInfo",
    "is_retryable",
]


@dataclass(frozen=True)
class UsageInfo:
    """Token usage from a completed model call.

    OpenAI-compatible endpoints report usage optionally; clients fall back
    to zeros when the reply omits it.
    """

    prompt_tokens: int
    completion_tokens: int


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ModelCallError(Exception):
    """Base class for every failure of an outbound model call."""


class ConfigurationError(ModelCallError):
    """API key or endpoint missing. Raised before any network traffic."""


class ModelTransportError(ModelCallError):
    """Timeout, refused connection or any other transport failure."""


class ModelHTTPError(ModelCallError):
    """The endpoint answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str = "", message: str | None = None) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message or f"API调用失败: {status_code} - {body}")


class EndpointNotFoundError(ModelHTTPError):
    """404 — the configured endpoint URL is wrong. Actionable by the user."""

    def __init__(self, endpoint: str, body: str = "") -> None:
        self.endpoint = endpoint
        super().__init__(404, body, f"API端点不存在，请检查URL配置: {endpoint}")


class MalformedResponseError(ModelCallError):
    """2xx reply without a usable choices[0].message.content."""


class JobSupersededError(ModelCallError):
    """A queued job was replaced by a newer one for the same document."""


def is_retryable(exc: Exception) -> bool:
    """Checks whether a failed call is worth another attempt.

    Retries on:
    - ModelTransportError (timeouts, connection failures)
    - ModelHTTPError (every non-2xx, including 404)

    Configuration and malformed-response errors never improve on retry.
    """
    return isinstance(exc, (ModelTransportError, ModelHTTPError))


# ---------------------------------------------------------------------------
# AIProvider ABC — the interface every model client implements
# ---------------------------------------------------------------------------


class AIProvider(ABC):
    """Abstract base for model clients.

    Concrete implementations (ChatCompletionsProvider, MockProvider) send
    exactly one request per complete() call. They must raise a
    ModelCallError subclass on failure and never retry on their own.
    """

    @abstractmethod
    async def complete(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        model_config: ModelConfig,
    ) -> tuple[str, UsageInfo]:
        """Returns the full reply text and usage info.

        Args:
            system_prompt: Persona/instructions sent as the system message.
            user_prompt: The request sent as the single user message.
            model_config: Model name and sampling parameters.

        Returns:
            Tuple of (reply text, token usage information).

        Raises:
            ModelCallError: On any failure (see subclasses).
        """

    def check_configured(self) -> None:
        """Raises ConfigurationError if the client cannot send anything.

        Called before a request is queued so that a missing key fails
        without waiting on the rate floor. No-op by default.
        """

    async def aclose(self) -> None:
        """Releases network resources. No-op by default."""
