"""Progress events and the emitter that derives them from advisor state.

The emitter sees every state value the graph produces and classifies the
latest message:

- a ``[Routing to X] reasoning`` announcement becomes an ``agent`` event
  with status ``routing``;
- a message named after a specialist becomes an ``agent`` event with
  status ``working`` and the market's status line;
- a state whose ``next`` is ``End`` becomes the single ``final`` event.

The emitter moves ``IDLE -> EMITTING -> CLOSED``. Once a ``final`` or
``error`` event has been produced it refuses further input.
"""

from datetime import (
    datetime,
    timezone,
)
from enum import Enum
from typing import (
    Any,
    Dict,
    Literal,
    Mapping,
    Optional,
    Union,
)

from langchain_core.messages import BaseMessage
from pydantic import (
    BaseModel,
    Field,
)

from app.core.langgraph.workflow.schema import (
    WORKER_PARTICIPANTS,
    Participant,
)
from app.core.langgraph.workflow.supervisor import parse_routing_message


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class _BaseEvent(BaseModel):
    timestamp: str = Field(default_factory=_now)

    def to_sse(self) -> str:
        r"""Frame the event as one ``data: <json>\n\n`` SSE message."""
        return f"data: {self.model_dump_json()}\n\n"


class AgentEvent(_BaseEvent):
    """A specialist is being routed to or is working."""

    type: Literal["agent"] = "agent"
    agent: str
    status: Literal["routing", "working"]
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)


class FinalEvent(_BaseEvent):
    """The synthesized answer. Always the last event of a run."""

    type: Literal["final"] = "final"
    agent: str = Participant.FINAL_RESPONSE.value
    status: str = "complete"
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)


class ErrorEvent(_BaseEvent):
    """The run failed. Always the last event of a run."""

    type: Literal["error"] = "error"
    error: str


ProgressEvent = Union[AgentEvent, FinalEvent, ErrorEvent]


class EmitterState(str, Enum):
    """Lifecycle of a ProgressEmitter."""

    IDLE = "idle"
    EMITTING = "emitting"
    CLOSED = "closed"


class EmitterClosedError(RuntimeError):
    """Raised when an event is requested after the terminal event."""


def _get(state: Any, key: str, default: Any = None) -> Any:
    if isinstance(state, Mapping):
        return state.get(key, default)
    return getattr(state, key, default)


def _content(message: Any) -> str:
    content = message.content if isinstance(message, BaseMessage) else _get(message, "content", "")
    return content if isinstance(content, str) else str(content)


class ProgressEmitter:
    """Turns the sequence of advisor states into progress events for one run."""

    def __init__(self, initial_message_count: int = 0, status_messages: Optional[Mapping[Participant, str]] = None):
        """Initialize the emitter.

        Args:
            initial_message_count: Number of input messages; states that only
                echo the input produce no event.
            status_messages: "Working" status line per specialist.
        """
        self.initial_message_count = initial_message_count
        self.status_messages = dict(status_messages or {})
        self.state = EmitterState.IDLE

    @property
    def closed(self) -> bool:
        """Whether the terminal event has been emitted."""
        return self.state == EmitterState.CLOSED

    def _check_open(self) -> None:
        if self.closed:
            raise EmitterClosedError("The run already emitted its terminal event")

    def observe(self, state: Any) -> Optional[ProgressEvent]:
        """Classify one state value.

        Args:
            state: Full advisor state, as a mapping or an ``AdvisorState``.

        Returns:
            Optional[ProgressEvent]: The event for this state, or None if the
            state carries nothing new.

        Raises:
            EmitterClosedError: If the terminal event was already emitted.
        """
        self._check_open()

        messages = _get(state, "messages") or []
        data = dict(_get(state, "data") or {})
        next_participant = _get(state, "next")

        if next_participant == Participant.END:
            content = _content(messages[-1]) if messages else ""
            self.state = EmitterState.CLOSED
            return FinalEvent(message=content, data=data)

        if len(messages) <= self.initial_message_count:
            return None

        self.state = EmitterState.EMITTING
        last = messages[-1]
        routing = parse_routing_message(_content(last))
        if routing is not None:
            agent, reasoning = routing
            return AgentEvent(agent=agent, status="routing", message=reasoning, data=data)

        name = last.name if isinstance(last, BaseMessage) else _get(last, "name")
        if name in {p.value for p in WORKER_PARTICIPANTS}:
            participant = Participant(name)
            return AgentEvent(
                agent=participant.value,
                status="working",
                message=self.status_messages.get(participant, "Processing..."),
                data=data,
            )

        return AgentEvent(
            agent=Participant(next_participant).value if next_participant else "unknown",
            status="working",
            message="Processing...",
            data=data,
        )

    def error(self, message: str) -> ErrorEvent:
        """Emit the terminal error event.

        Raises:
            EmitterClosedError: If the terminal event was already emitted.
        """
        self._check_open()
        self.state = EmitterState.CLOSED
        return ErrorEvent(error=message)
