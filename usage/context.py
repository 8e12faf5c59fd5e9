import logging
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional


@dataclass
class LLMCall:
    provider: str
    model: str
    prompt_tokens: int
    completion_tokens: int
    cost: Decimal
    duration_ms: int

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass
class RequestContext:
    """Per-request accumulator for LLM work done while serving a request."""
    request_id: str
    started_at: float = field(default_factory=time.monotonic)
    llm_calls: list = field(default_factory=list)

    @property
    def prompt_tokens(self) -> int:
        return sum(call.prompt_tokens for call in self.llm_calls)

    @property
    def completion_tokens(self) -> int:
        return sum(call.completion_tokens for call in self.llm_calls)

    @property
    def total_tokens(self) -> int:
        return sum(call.total_tokens for call in self.llm_calls)

    @property
    def total_cost(self) -> Decimal:
        return sum((call.cost for call in self.llm_calls), Decimal("0"))

    @property
    def last_provider(self) -> Optional[str]:
        return self.llm_calls[-1].provider if self.llm_calls else None

    @property
    def last_model(self) -> Optional[str]:
        return self.llm_calls[-1].model if self.llm_calls else None

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)

    def snapshot(self) -> dict:
        return {
            "request_id": self.request_id,
            "duration_ms": self.elapsed_ms(),
            "llm_calls": len(self.llm_calls),
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
            "cost": self.total_cost,
            "provider": self.last_provider,
            "model": self.last_model,
        }


_current: ContextVar[Optional[RequestContext]] = ContextVar("robohire_request_context", default=None)


def generate_request_id() -> str:
    return f"req_{uuid.uuid4().hex}"


def start_request(request_id: str) -> RequestContext:
    context = RequestContext(request_id=request_id)
    _current.set(context)
    return context


def end_request() -> Optional[RequestContext]:
    context = _current.get()
    _current.set(None)
    return context


def get_request_context() -> Optional[RequestContext]:
    return _current.get()


def get_request_id() -> Optional[str]:
    context = _current.get()
    return context.request_id if context else None


def record_llm_call(provider, model, prompt_tokens=0, completion_tokens=0, cost=0, duration_ms=0):
    """
    Integration hook for LLM providers. Call it after each completion so the
    tokens and cost are added to the current request's audit row and stored
    as one LLMCallLog row. Outside a request nothing is tracked and None is
    returned.
    """
    context = _current.get()
    if context is None:
        return None

    call = LLMCall(
        provider=provider,
        model=model,
        prompt_tokens=int(prompt_tokens or 0),
        completion_tokens=int(completion_tokens or 0),
        cost=Decimal(str(cost or 0)),
        duration_ms=int(duration_ms or 0),
    )
    context.llm_calls.append(call)
    return call


class RequestIdLogFilter(logging.Filter):
    """Adds ``request_id`` to every log record so the formatter can print it."""

    def filter(self, record):
        record.request_id = get_request_id() or "-"
        return True
