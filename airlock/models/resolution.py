"""Override hook results — an explicit Keep/Block sum type.

A hook receives the candidate update and the request context and answers
with either ``Keep(update)`` (optionally a modified copy) or ``Block``.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Union

from pydantic import BaseModel, ConfigDict

from airlock.models.context import UpdateContext
from airlock.models.updates import StoredUpdate


class Keep(BaseModel):
    """Serve ``update`` (which may differ from the stored candidate)."""

    model_config = ConfigDict(frozen=True)

    update: StoredUpdate


class Block(BaseModel):
    """Veto: the client receives "no update"."""

    model_config = ConfigDict(frozen=True)

    reason: str = ""


Resolution = Union[Keep, Block]

OverrideHook = Callable[
    [StoredUpdate, UpdateContext], Union[Resolution, Awaitable[Resolution]]
]
