"""Event sinks.

Every sink implements ``BaseSink``: a ``sink_name`` property and an
``accept(event)`` method, which may be a plain function or a coroutine.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Protocol, Union, runtime_checkable

from airlock.core.hasher import canonical_json_bytes
from airlock.models.events import AirlockEvent

logger = logging.getLogger(__name__)


@runtime_checkable
class BaseSink(Protocol):
    """Protocol that every event sink must implement.

    Attributes
    ----------
    sink_name : str
        A unique human-readable identifier for this sink instance
        (e.g. ``"log"``, ``"jsonl_file"``).
    """

    @property
    def sink_name(self) -> str:
        """Return the unique name of this sink."""
        ...

    def accept(self, event: AirlockEvent) -> Union[None, Awaitable[None]]:
        """Process one event.  Raising is allowed; the dispatcher logs it."""
        ...


class LoggingSink:
    """Writes one log line per event."""

    def __init__(self, level: int = logging.INFO) -> None:
        self._level = level

    @property
    def sink_name(self) -> str:
        return "log"

    def accept(self, event: AirlockEvent) -> None:
        fields = event.model_dump(mode="json", exclude={"event_id", "timestamp_utc", "type"})
        fields.pop("context", None)
        logger.log(self._level, "event %s %s", event.type.value, fields)


class JsonlFileSink:
    """Appends each event as one canonical JSON line.

    Parameters
    ----------
    path:
        Target file.  Parent directories are created.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def sink_name(self) -> str:
        return "jsonl_file"

    def accept(self, event: AirlockEvent) -> None:
        line = canonical_json_bytes(event.model_dump(mode="json"))
        with self._path.open("ab") as fh:
            fh.write(line + b"\n")

    def read_events(self) -> list[dict[str, Any]]:
        """Read back every event written so far."""
        if not self._path.exists():
            return []
        return [
            json.loads(line)
            for line in self._path.read_bytes().splitlines()
            if line.strip()
        ]


class CallbackSink:
    """Adapts a plain ``on_event`` callable (sync or async) into a sink."""

    def __init__(
        self,
        callback: Callable[[AirlockEvent], Union[None, Awaitable[None]]],
        name: str = "callback",
    ) -> None:
        self._callback = callback
        self._name = name

    @property
    def sink_name(self) -> str:
        return self._name

    def accept(self, event: AirlockEvent) -> Union[None, Awaitable[None]]:
        # An async callback hands its coroutine back for the dispatcher to await
        return self._callback(event)
