from dataclasses import dataclass
from typing import Literal, Protocol, Sequence


Role = Literal["system", "user", "assistant"]
ProviderStatus = Literal["ok", "empty", "http_error", "network_error", "timeout", "not_configured"]


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    content: str


@dataclass(frozen=True)
class ProviderCall:
    """Outcome of a single attempt against the AI provider."""

    status: ProviderStatus
    content: str = ""
    http_status: int | None = None
    error: str | None = None
    latency_ms: int = 0

    @property
    def has_content(self) -> bool:
        return self.status == "ok" and bool(self.content.strip())


class AIClient(Protocol):
    model: str

    async def complete(self, messages: Sequence[ChatMessage]) -> ProviderCall: ...
