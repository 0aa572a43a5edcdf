"""
Reasoning engine used by the orchestrator to pick tools and compose answers.

The orchestrator only depends on the ``ReasoningEngine`` protocol. The
default implementation talks to Amazon Bedrock through the Converse API
with a tool configuration built from the discovered catalog.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import boto3

from .config import ClientConfig
from .market_client import DiscoveredTool
from .tracing import traced

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an autonomous agent that can use tools from a paid marketplace.

IMPORTANT RULES:
1. First analyze the user's query to determine if a tool is needed
2. Only call a tool if it is absolutely necessary to answer the question
3. If multiple tools provide the same capability, ALWAYS choose the lowest-cost tool
4. Construct arguments exactly according to the tool's parameter schema
5. Call at most one tool
6. Be concise and helpful in your responses

Each tool has a monetary cost stated in its description (COSTS: <amount> USDC).
Consider cost when selecting tools."""


@dataclass
class ToolCall:
    """A tool call requested by the engine."""
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class EngineReply:
    """The engine's answer to a query: text, tool calls, or both."""
    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)


@dataclass
class Conversation:
    """Everything the engine needs to compose the final answer."""
    system: str
    query: str
    tools: list[DiscoveredTool]
    reply: EngineReply
    call: ToolCall
    result: Any


class ReasoningEngine(Protocol):
    async def select(self, system: str, query: str, tools: list[DiscoveredTool]) -> EngineReply:
        ...

    async def compose(self, conversation: Conversation) -> str:
        ...


def _tool_config(tools: list[DiscoveredTool]) -> dict[str, Any]:
    return {
        "tools": [
            {
                "toolSpec": {
                    "name": tool.name,
                    "description": tool.description,
                    "inputSchema": {"json": tool.input_schema()},
                }
            }
            for tool in tools
        ]
    }


class BedrockReasoningEngine:
    """
    Reasoning engine backed by the Bedrock Converse API.

    boto3 is blocking, so each call runs in a worker thread.
    """

    def __init__(
        self,
        model_id: str,
        region: str = "us-west-2",
        temperature: float = 0.5,
        max_tokens: int = 4096,
        client: Optional[Any] = None,
    ):
        self.model_id = model_id
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.client = client or boto3.client("bedrock-runtime", region_name=region)

    @classmethod
    def from_config(cls, config: ClientConfig) -> "BedrockReasoningEngine":
        return cls(
            model_id=config.model_id,
            region=config.aws_region,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
        )

    def _converse(self, **kwargs: Any) -> dict[str, Any]:
        return self.client.converse(
            modelId=self.model_id,
            inferenceConfig={"temperature": self.temperature, "maxTokens": self.max_tokens},
            **kwargs,
        )

    @staticmethod
    def _parse_reply(response: dict[str, Any]) -> EngineReply:
        content = response.get("output", {}).get("message", {}).get("content", [])
        texts = []
        calls = []
        for block in content:
            if "text" in block:
                texts.append(block["text"])
            elif "toolUse" in block:
                tool_use = block["toolUse"]
                calls.append(
                    ToolCall(
                        id=tool_use.get("toolUseId", ""),
                        name=tool_use["name"],
                        arguments=tool_use.get("input") or {},
                    )
                )
        return EngineReply(text="\n".join(texts).strip(), tool_calls=calls)

    @traced("reasoning.select")
    async def select(self, system: str, query: str, tools: list[DiscoveredTool]) -> EngineReply:
        kwargs: dict[str, Any] = {
            "system": [{"text": system}],
            "messages": [{"role": "user", "content": [{"text": query}]}],
        }
        if tools:
            kwargs["toolConfig"] = _tool_config(tools)

        response = await asyncio.to_thread(self._converse, **kwargs)
        reply = self._parse_reply(response)
        logger.info(
            "Engine replied with %d tool call(s) (stop reason: %s)",
            len(reply.tool_calls),
            response.get("stopReason"),
        )
        return reply

    @traced("reasoning.compose")
    async def compose(self, conversation: Conversation) -> str:
        assistant_content: list[dict[str, Any]] = []
        if conversation.reply.text:
            assistant_content.append({"text": conversation.reply.text})
        # Only the executed call is echoed back; every toolUse needs a matching toolResult.
        assistant_content.append(
            {
                "toolUse": {
                    "toolUseId": conversation.call.id,
                    "name": conversation.call.name,
                    "input": conversation.call.arguments,
                }
            }
        )

        messages = [
            {"role": "user", "content": [{"text": conversation.query}]},
            {"role": "assistant", "content": assistant_content},
            {
                "role": "user",
                "content": [
                    {
                        "toolResult": {
                            "toolUseId": conversation.call.id,
                            "content": [{"text": json.dumps(conversation.result, default=str)}],
                        }
                    }
                ],
            },
        ]

        response = await asyncio.to_thread(
            self._converse,
            system=[{"text": conversation.system}],
            messages=messages,
            toolConfig=_tool_config(conversation.tools),
        )
        return self._parse_reply(response).text
