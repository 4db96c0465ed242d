"""OpenAI-compatible chat-completions client using httpx.

Implements the AIProvider contract for any endpoint that speaks the
``/v1/chat/completions`` dialect (SiliconFlow, Spark, OpenRouter, vLLM...).
Sends one POST per call with a Bearer key and maps every failure onto the
ModelCallError taxonomy. No retry here: the orchestrator owns retry and
pacing so that the global rate floor holds across attempts.

Tier 2 service — imports from base.py (Tier 1) + httpx.
"""

import logging

import httpx

from codecoach.ai.providers.base import (
    AIProvider,
    ConfigurationError,
    EndpointNotFoundError,
    MalformedResponseError,
    ModelConfig,
    ModelHTTPError,
    ModelTransportError,
    UsageInfo,
)

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT_S = 60.0
_ERROR_BODY_LIMIT = 500  # characters of an error body kept in exceptions/logs


def build_payload(system_prompt: str, user_prompt: str, model_config: ModelConfig) -> dict:
    """Builds the JSON request body for one chat-completion call."""
    return {
        "model": model_config.model_id,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        "temperature": model_config.temperature,
        "max_tokens": model_config.max_tokens,
    }


def extract_reply(data: object) -> tuple[str, UsageInfo]:
    """Pulls ``choices[0].message.content`` and usage out of a reply body.

    Raises:
        MalformedResponseError: If the body does not have the expected shape.
    """
    try:
        content = data["choices"][0]["message"]["content"]  # type: ignore[index]
    except (KeyError, IndexError, TypeError):
        raise MalformedResponseError(
            "Model reply has no choices[0].message.content"
        ) from None
    if not isinstance(content, str):
        raise MalformedResponseError(
            f"Model reply content is {type(content).__name__}, expected str"
        )

    usage = data.get("usage") if isinstance(data, dict) else None
    if isinstance(usage, dict):
        info = UsageInfo(
            prompt_tokens=int(usage.get("prompt_tokens") or 0),
            completion_tokens=int(usage.get("completion_tokens") or 0),
        )
    else:
        info = UsageInfo(prompt_tokens=0, completion_tokens=0)
    return content, info


class ChatCompletionsProvider(AIProvider):
    """Chat-completions client for a single configured endpoint.

    Args:
        endpoint: Full URL of the chat-completions resource.
        api_key: Bearer token. Empty means "not configured".
        timeout_s: Per-request timeout in seconds.
        transport: Optional httpx transport (tests pass httpx.MockTransport).
    """

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        timeout_s: float = _DEFAULT_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._api_key = api_key
        self._client = httpx.AsyncClient(timeout=timeout_s, transport=transport)

    def check_configured(self) -> None:
        if not self._api_key:
            raise ConfigurationError("未配置AI API密钥")
        if not self._endpoint:
            raise ConfigurationError("未配置AI API端点")

    async def complete(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        model_config: ModelConfig,
    ) -> tuple[str, UsageInfo]:
        """Sends one chat-completion request and returns the reply text.

        Raises:
            ConfigurationError: No API key or endpoint configured.
            EndpointNotFoundError: The endpoint answered 404.
            ModelHTTPError: Any other non-2xx status.
            ModelTransportError: Timeout or connection failure.
            MalformedResponseError: 2xx reply without usable content.
        """
        self.check_configured()

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }
        payload = build_payload(system_prompt, user_prompt, model_config)

        try:
            response = await self._client.post(self._endpoint, json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            raise ModelTransportError(f"请求超时: {exc}") from exc
        except httpx.HTTPError as exc:
            raise ModelTransportError(f"网络错误: {exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            body = response.text[:_ERROR_BODY_LIMIT]
            logger.info("API error (%d): %s", response.status_code, body)
            if response.status_code == 404:
                raise EndpointNotFoundError(self._endpoint, body)
            raise ModelHTTPError(response.status_code, body)

        try:
            data = response.json()
        except ValueError:
            raise MalformedResponseError("Model reply is not valid JSON") from None

        return extract_reply(data)

    async def aclose(self) -> None:
        await self._client.aclose()
