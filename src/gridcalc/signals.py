"""Typed signals published at the engine boundary.

A UI layer (or the HTTP service) subscribes to these channels instead of
listening for ambient global events.  Handlers run synchronously, in
connection order, on the thread that published the message.
"""

from __future__ import annotations

from typing import Callable, Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class CellCommitted(BaseModel):
    """A ``set_cell`` / ``set_cell_formula`` call finished."""

    row: int
    col: int
    ref: str


class ReferenceInsert(BaseModel):
    """A drag-selection produced a reference to splice into the formula editor."""

    text: str
    cursor_pos: int


class Channel(Generic[T]):
    """Callback list for one message type."""

    def __init__(self) -> None:
        self._handlers: list[Callable[[T], None]] = []

    def connect(self, handler: Callable[[T], None]) -> Callable[[T], None]:
        """Register *handler*; returns it so the method works as a decorator."""
        self._handlers.append(handler)
        return handler

    def disconnect(self, handler: Callable[[T], None]) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def publish(self, message: T) -> None:
        # A failing handler propagates to the publisher.
        for handler in list(self._handlers):
            handler(message)

    def __len__(self) -> int:
        return len(self._handlers)


class EngineSignals:
    """One channel per message type."""

    def __init__(self) -> None:
        self.cell_committed: Channel[CellCommitted] = Channel()
        self.reference_insert: Channel[ReferenceInsert] = Channel()
