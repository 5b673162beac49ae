"""HTTP client for the text-generation (LLM) service."""
import logging
from typing import Any, Dict, Optional

import httpx

from newsdesk.config import Settings, settings as default_settings
from newsdesk.shared.errors import EmptyModelContent, ModelTimeout, UpstreamModelError

logger = logging.getLogger(__name__)

GENERATION_PATH = "/api/v1/services/aigc/text-generation/generation"


class LLMServiceClient:
    """Client for a DashScope-compatible text-generation endpoint.

    No retries: every failure is reported once with a typed error and the
    caller decides whether to try again.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize LLM service client."""
        config = config or default_settings
        self.base_url = config.llm_service_url.rstrip("/")
        self.api_key = config.llm_api_key
        self.model = config.llm_model
        self.timeout = config.llm_service_timeout
        self.temperature = config.llm_temperature
        self.top_p = config.llm_top_p
        self.transport = transport

    def _payload(self, system_prompt: str, user_text: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "input": {
                "messages": [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": f"News Text: {user_text}"},
                ]
            },
            "parameters": {
                "result_format": "message",
                "temperature": self.temperature,
                "top_p": self.top_p,
            },
        }

    async def generate(self, system_prompt: str, user_text: str) -> str:
        """
        Send one chat request and return the model's raw text reply.

        Raises:
            ModelTimeout: the service did not answer in time
            UpstreamModelError: transport failure, non-2xx, or error payload
            EmptyModelContent: the reply carried no content
        """
        if not self.api_key or self.api_key.startswith("sk-xxxx"):
            raise UpstreamModelError("LLM_API_KEY is not configured")

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(
                    f"{self.base_url}{GENERATION_PATH}",
                    json=self._payload(system_prompt, user_text),
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
            except httpx.TimeoutException as e:
                raise ModelTimeout(
                    f"AI service timed out after {self.timeout}s, please retry later"
                ) from e
            except httpx.HTTPError as e:
                raise UpstreamModelError(f"AI service request failed: {e}") from e

        data = self._json(response)

        if response.is_error:
            message = data.get("message") or data.get("code") or f"AI service error ({response.status_code})"
            logger.error(f"LLM service returned {response.status_code}: {message}")
            raise UpstreamModelError(str(message), status_code=response.status_code, code=data.get("code"))

        code = data.get("code")
        if code and str(code) != "200" and data.get("message"):
            raise UpstreamModelError(
                f"LLM API error: {data['message']}",
                status_code=response.status_code,
                code=str(code),
            )

        content = self._content(data)
        if not content.strip():
            raise EmptyModelContent("AI service returned empty content")
        return content

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _content(data: Dict[str, Any]) -> str:
        choices = (data.get("output") or {}).get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return ""
        content = (choices[0].get("message") or {}).get("content")
        return content if isinstance(content, str) else ""
