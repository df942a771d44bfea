"""Background completion notifications pushed to a session's client.

Long-running work owned by the backend finishes in one of three ways. The
outcome is a single tagged value delivered through notify_outcome(), which
turns it into one ``notifications/message`` notification.
"""

from dataclasses import dataclass
from typing import Any, Literal, Protocol

NOTIFICATION_METHOD = "notifications/message"
LOGGER_NAME = "shellbridge"


@dataclass(frozen=True)
class Completed:
    payload: Any = None
    kind: Literal["completed"] = "completed"


@dataclass(frozen=True)
class Failed:
    error: str
    kind: Literal["failed"] = "failed"


@dataclass(frozen=True)
class TimedOut:
    timeout_seconds: float | None = None
    kind: Literal["timed_out"] = "timed_out"


Outcome = Completed | Failed | TimedOut


class Notifier(Protocol):
    async def notify(self, method: str, params: dict[str, Any] | None = None) -> None: ...


def outcome_params(task_id: str, outcome: Outcome) -> dict[str, Any]:
    """Build the notification params for an outcome."""
    data: dict[str, Any]
    if isinstance(outcome, Completed):
        level = "info"
        data = {
            "message": f"Background task {task_id} completed",
            "result": outcome.payload,
        }
    elif isinstance(outcome, Failed):
        level = "error"
        data = {
            "message": f"Background task {task_id} failed: {outcome.error}",
            "error": outcome.error,
        }
    elif isinstance(outcome, TimedOut):
        level = "warning"
        timeout = outcome.timeout_seconds
        suffix = f" after {timeout:g}s" if timeout is not None else ""
        data = {"message": f"Background task {task_id} timed out{suffix}"}
    else:
        raise TypeError(f"Unknown outcome: {outcome!r}")

    data["task_id"] = task_id
    data["status"] = outcome.kind
    return {"level": level, "logger": LOGGER_NAME, "data": data}


async def notify_outcome(notifier: Notifier, task_id: str, outcome: Outcome) -> None:
    """Deliver a background task outcome to the client."""
    await notifier.notify(NOTIFICATION_METHOD, outcome_params(task_id, outcome))
