"""Tool-calling reasoner backed by the OpenAI chat completions API."""

from __future__ import annotations

import logging
from collections import deque
from pathlib import Path
from typing import AsyncIterator, Deque, Dict, List, Optional, Tuple

import yaml
from openai import NOT_GIVEN, AsyncOpenAI, OpenAIError

from .errors import ReasoningError
from .wallet import Network

log = logging.getLogger(__name__)

MAX_HISTORY = 50
MAX_TOOL_STEPS = 8
DEFAULT_PERSONA_PATH = Path(__file__).with_name("persona_config.yaml")
SECTION_ORDER = ("role", "workflow", "network", "scope", "errors", "style")

_DEFAULT_SECTIONS: Dict[str, List[str]] = {
    "role": [
        "You are a DeFi payment agent that assists users with sending payments and managing their crypto assets.",
    ],
    "workflow": [
        "When a user asks you to make a payment or check a balance, always check the wallet details first to see what network you are on.",
        "If you are on a testnet, you can request funds from the faucet if needed.",
        "For mainnet operations, provide the wallet details and ask the user to fund the wallet.",
    ],
    "network": [
        "Your default network is {network_label} ({network_id}).",
        "Your main and only token for transactions is {token_symbol}. Token address is {token_address}.",
    ],
    "scope": [
        "You can only perform payment and wallet related tasks. For other requests, politely explain that you are specialized in processing payments and can't assist with it.",
    ],
    "errors": [
        "If you encounter an error:",
        "- For 5XX errors: ask the user to try again.",
        "- For other errors: provide clear troubleshooting advice and offer to retry.",
    ],
    "style": ["Be concise, precise and security-focused in all interactions."],
}


class _KeepMissing(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def _read_sections(path: Path) -> Dict[str, List[str]]:
    if not path.exists():
        return {}
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        log.warning("failed to read persona config %s: %s", path, exc)
        return {}
    sections: Dict[str, List[str]] = {}
    if isinstance(raw, dict):
        for key, value in raw.items():
            slug = str(key).strip().lower()
            if isinstance(value, (list, tuple)):
                lines = [str(item).strip() for item in value if str(item or "").strip()]
            elif isinstance(value, str):
                lines = [value.strip()]
            else:
                lines = []
            if lines:
                sections[slug] = lines
    return sections


def load_instruction(network: Network, override_path: Optional[Path] = None) -> str:
    """Compose the fixed system instruction for sessions on ``network``."""
    sections = _read_sections(DEFAULT_PERSONA_PATH) or dict(_DEFAULT_SECTIONS)
    if override_path:
        sections.update(_read_sections(Path(override_path)))
    values = _KeepMissing(
        network_id=network.network_id,
        network_label=network.label,
        token_symbol="USDC",
        token_address=network.usdc_address,
    )
    paragraphs = []
    for key in SECTION_ORDER:
        lines = sections.get(key)
        if lines:
            paragraphs.append("\n".join(line.format_map(values) for line in lines))
    return "\n\n".join(paragraphs)


class ConversationMemory:
    """Bounded user/assistant turn history for one session."""

    def __init__(self, max_turns: int = MAX_HISTORY) -> None:
        self._turns: Deque[Tuple[str, str]] = deque(maxlen=max_turns)

    def append(self, role: str, content: str) -> None:
        self._turns.append((role, content))

    def messages(self) -> List[dict]:
        return [{"role": role, "content": content} for role, content in self._turns]

    def __len__(self) -> int:
        return len(self._turns)


class OpenAIReasoner:
    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        client: Optional[AsyncOpenAI] = None,
        max_steps: int = MAX_TOOL_STEPS,
    ) -> None:
        self.client = client or AsyncOpenAI(api_key=api_key)
        self.model = model
        self.max_steps = max_steps

    async def close(self) -> None:
        await self.client.close()

    async def respond(self, session, text: str) -> AsyncIterator[str]:
        """Yield each assistant message produced while answering ``text``."""
        tools = {tool.name: tool for tool in session.tools}
        messages: List[dict] = [{"role": "system", "content": session.instruction}]
        messages.extend(session.memory.messages())
        messages.append({"role": "user", "content": text})
        answer: List[str] = []
        for _ in range(self.max_steps):
            try:
                response = await self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    tools=[tool.openai_schema() for tool in tools.values()] or NOT_GIVEN,
                )
            except OpenAIError as exc:
                raise ReasoningError(f"chat completion failed: {exc}") from exc
            if not response.choices:
                raise ReasoningError("chat completion returned no choices")
            reply = response.choices[0].message
            content = (reply.content or "").strip()
            if content:
                answer.append(content)
                yield content + "\n"
            tool_calls = reply.tool_calls or []
            if not tool_calls:
                session.memory.append("user", text)
                session.memory.append("assistant", "\n".join(answer))
                return
            messages.append(
                {
                    "role": "assistant",
                    "content": reply.content,
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {
                                "name": call.function.name,
                                "arguments": call.function.arguments,
                            },
                        }
                        for call in tool_calls
                    ],
                }
            )
            for call in tool_calls:
                tool = tools.get(call.function.name)
                if tool is None:
                    result = f"Error: unknown tool {call.function.name}."
                else:
                    log.info("tool %s called for %s", tool.name, session.identity)
                    result = await tool.invoke(call.function.arguments)
                messages.append({"role": "tool", "tool_call_id": call.id, "content": result})
        raise ReasoningError(f"no final answer after {self.max_steps} steps")
