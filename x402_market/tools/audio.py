"""Text-to-speech tool using the OpenAI-compatible Groq speech API."""

from typing import Any, Optional

import httpx

from .base import UpstreamToolExecutor, response_payload
from .results import FailureKind, ToolResult

WAV_MIME_TYPE = "audio/wav"


class SpeechExecutor(UpstreamToolExecutor):
    """Synthesizes WAV audio for a piece of text."""

    def __init__(
        self,
        name: str,
        api_key: str,
        base_url: str = "https://api.groq.com/openai/v1",
        model: str = "canopylabs/orpheus-v1-english",
        voice: str = "autumn",
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            name,
            required=("text",),
            timeout_seconds=timeout_seconds,
            transport=transport,
            argument_types={"text": "string", "voice": "string"},
        )
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.voice = voice

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        if not self.api_key:
            return ToolResult.failed(
                FailureKind.INTERNAL,
                503,
                "Speech synthesis is not configured",
                error="GROQ_API_KEY not set",
            )

        response, failure = await self.request(
            "POST",
            f"{self.base_url}/audio/speech",
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={
                "model": self.model,
                "voice": arguments.get("voice") or self.voice,
                "response_format": "wav",
                "input": arguments["text"],
            },
        )
        if failure:
            return failure

        if not response.is_success:
            return ToolResult.failed(
                FailureKind.UPSTREAM_STATUS,
                response.status_code,
                "Speech synthesis failed",
                error=response_payload(response),
            )
        return ToolResult.binary(response.content, WAV_MIME_TYPE)
