import contextvars
from contextlib import contextmanager
import uuid

request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("request_id", default=None)

# Pipeline identifiers attached to every log record emitted inside `log_context`.
_PIPELINE_VARS: dict[str, contextvars.ContextVar[str | None]] = {
    "stage": contextvars.ContextVar("stage", default=None),
    "session_id": contextvars.ContextVar("session_id", default=None),
    "node_id": contextvars.ContextVar("node_id", default=None),
}
PIPELINE_FIELDS = tuple(_PIPELINE_VARS)


def set_request_id(request_id: str) -> contextvars.Token:
    """Store the current request ID in a context variable."""
    return request_id_var.set(request_id)


def reset_request_id(token: contextvars.Token) -> None:
    """Reset the request ID context variable to a previous state."""
    request_id_var.reset(token)


def get_request_id() -> str | None:
    """Retrieve the current request ID from the context."""
    return request_id_var.get()


def pipeline_context() -> dict[str, str | None]:
    """Current stage, session and node identifiers, None where unset."""
    return {name: var.get() for name, var in _PIPELINE_VARS.items()}


@contextmanager
def log_context(
    stage: str | None = None,
    session_id: uuid.UUID | str | None = None,
    node_id: uuid.UUID | str | None = None,
):
    """Temporarily scope stage/session/node context for structured logs."""
    values = {"stage": stage, "session_id": session_id, "node_id": node_id}
    tokens = [
        (_PIPELINE_VARS[name], _PIPELINE_VARS[name].set(str(value)))
        for name, value in values.items()
        if value is not None
    ]
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)
