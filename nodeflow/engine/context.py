"""
Per-run configuration, options and cancellation.
"""

from typing import TYPE_CHECKING, Awaitable, Dict, Optional, TypeVar
from dataclasses import dataclass, field
import asyncio

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from nodeflow.engine.errors import ExecutionCancelled
from nodeflow.engine.retry import RetryPolicy

if TYPE_CHECKING:
    from nodeflow.clients.factory import ClientFactory


T = TypeVar("T")


class RunConfig(BaseModel):
    """Caller-supplied configuration for one run."""

    api_keys: Dict[str, str] = Field(default_factory=dict)
    user_id: Optional[str] = Field(None, description="Pre-validated user identifier")

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class RunOptions(BaseModel):
    """
    Engine behaviour switches.

    Attributes:
        halt_on_node_error: Stop the run at the first node that records an error
        stream_node_logs: Emit a ``log`` event with the newest log line after each node
        llm_retry: Retry policy for LLM calls
        llm_timeout: Default per-call LLM timeout in seconds
        tool_timeout: Default per-call tool timeout in seconds
    """

    halt_on_node_error: bool = False
    stream_node_logs: bool = False
    llm_retry: RetryPolicy = Field(
        default_factory=lambda: RetryPolicy(max_retries=2, base_delay_ms=1000)
    )
    llm_timeout: float = Field(60.0, gt=0)
    tool_timeout: float = Field(60.0, gt=0)

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class CancelToken:
    """
    Cooperative cancellation signal shared by everything a run awaits.

    ``guard`` races an awaitable against the signal and ``sleep`` is a
    backoff sleep that wakes up early when the run is cancelled.
    """

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise ExecutionCancelled("Execution was cancelled")

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the run is cancelled first."""
        task = asyncio.ensure_future(awaitable)
        if self.cancelled:
            task.cancel()
            raise ExecutionCancelled("Execution was cancelled")

        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()

        if task not in done:
            raise ExecutionCancelled("Execution was cancelled")
        return task.result()

    async def sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise ExecutionCancelled("Execution was cancelled during retry backoff")


@dataclass
class RunContext:
    """Everything a node executor may use besides the state itself."""

    config: RunConfig
    options: RunOptions
    clients: "ClientFactory"
    cancel: CancelToken = field(default_factory=CancelToken)

    @property
    def user_id(self) -> Optional[str]:
        return self.config.user_id
