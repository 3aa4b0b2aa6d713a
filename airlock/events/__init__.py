"""Airlock event routing — best-effort delivery of engine and admin outcomes.

The dispatcher fans each event out to every registered sink on a
detached path, so a slow or failing sink never delays or fails the
HTTP response that produced the event.
"""

from airlock.events.dispatcher import EventDispatcher
from airlock.events.sinks import BaseSink, CallbackSink, JsonlFileSink, LoggingSink

__all__ = [
    "BaseSink",
    "CallbackSink",
    "EventDispatcher",
    "JsonlFileSink",
    "LoggingSink",
]
