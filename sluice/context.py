import contextvars
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .domain import ConnectionConfig
    from .recognition.store import AnonymousEventsStore


@dataclass(frozen=True)
class ExecutionContext:
    """Immutable logging context for the event currently being processed.

    Every log line emitted by the pipeline carries the originating
    ``message_id`` so retries of the same event can be correlated.

    Attributes:
        message_id: messageId of the event being processed.
        connection_id: Connection the event flows through.
        function_id: Pipeline stage, e.g. ``builtin.destination.bulker``.

    Examples:
        >>> ctx = ExecutionContext(connection_id="conn-1").for_message("m-1")
        >>> set_context(ctx)
        >>> log_extra(table="pages")
        {'message_id': 'm-1', 'connection_id': 'conn-1', 'table': 'pages'}
    """

    message_id: str | None = None
    connection_id: str | None = None
    function_id: str | None = None

    def for_message(self, message_id: str | None) -> "ExecutionContext":
        """Create a child context for processing another event."""
        return replace(self, message_id=message_id)

    def for_function(self, function_id: str) -> "ExecutionContext":
        """Create a child context for another pipeline stage."""
        return replace(self, function_id=function_id)

    def as_extra(self) -> dict[str, str]:
        """Non-empty fields as a logging ``extra`` mapping."""
        extra = {}
        if self.message_id is not None:
            extra["message_id"] = self.message_id
        if self.connection_id is not None:
            extra["connection_id"] = self.connection_id
        if self.function_id is not None:
            extra["function_id"] = self.function_id
        return extra


@dataclass(frozen=True)
class FunctionContext:
    """Collaborators and configuration handed to a pipeline function.

    Attributes:
        connection: Connection configuration (options, ids, destination type).
        anonymous_events_store: Store used by identity recognition.
    """

    connection: "ConnectionConfig"
    anonymous_events_store: "AnonymousEventsStore | None" = None

    @property
    def destination_type(self) -> str:
        return self.connection.destination_type

    @property
    def workspace_id(self) -> str:
        return self.connection.workspace_id


# Context variable for storing the current execution context
_context: contextvars.ContextVar[ExecutionContext | None] = contextvars.ContextVar(
    "execution_context", default=None
)


def get_context() -> ExecutionContext:
    """Get the current execution context.

    If no context has been set, returns an empty ExecutionContext with all fields None.
    """
    ctx = _context.get()
    if ctx is None:
        return ExecutionContext()
    return ctx


def set_context(context: ExecutionContext) -> contextvars.Token[ExecutionContext | None]:
    """Set the current execution context.

    Returns:
        A token that can be passed to ``reset_context``.
    """
    return _context.set(context)


def reset_context(token: contextvars.Token[ExecutionContext | None]) -> None:
    """Restore the context that was current before ``set_context``."""
    _context.reset(token)


def clear_context() -> None:
    """Clear the current execution context.

    This is useful for cleanup or testing.
    """
    _context.set(None)


def log_extra(message_id: str | None = None, **fields: Any) -> dict[str, Any]:
    """Build a logging ``extra`` mapping from the current context.

    Args:
        message_id: Overrides the context's message id when given.
        **fields: Additional structured fields.
    """
    extra: dict[str, Any] = get_context().as_extra()
    if message_id is not None:
        extra["message_id"] = message_id
    extra.update(fields)
    return extra
