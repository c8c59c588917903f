"""Event dispatcher: routes verified events to registered handlers.

Handlers are keyed by event type. Handlers registered under ``ANY_EVENT`` run
for every event, before the type-specific ones. Within a key, handlers run in
registration order, one at a time, and each one is awaited to completion.

A failing handler never stops its siblings. Failures are collected into the
returned ``DispatchResult``; ``dispatch()`` itself does not raise.
"""

import inspect
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Union

from starlette.concurrency import run_in_threadpool

from billing_gateway.schemas.events import VerifiedEvent
from billing_gateway.services.errors import (
    AllHandlersFailedError,
    HandlerError,
    handler_name,
)

logger = logging.getLogger(__name__)

ANY_EVENT = "*"

Handler = Callable[[VerifiedEvent], Union[Any, Awaitable[Any]]]


@dataclass
class DispatchResult:
    event: VerifiedEvent
    handled: list[str] = field(default_factory=list)
    failures: list[HandlerError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def all_failed(self) -> bool:
        return bool(self.failures) and not self.handled

    def raise_for_failures(self) -> None:
        """Raise AllHandlersFailedError if every invoked handler failed."""
        if self.all_failed:
            raise AllHandlersFailedError(self)


class EventDispatcher:
    def __init__(self):
        self._handlers: dict[str, list[Handler]] = {}
        self._lock = threading.Lock()

    def register(self, event_type: str, handler: Handler) -> Handler:
        if not event_type:
            raise ValueError("event_type must not be empty")
        if not callable(handler):
            raise TypeError("handler must be callable")
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)
        logger.debug(f"Registered {handler_name(handler)} for {event_type}")
        return handler

    def on(self, event_type: str) -> Callable[[Handler], Handler]:
        """Decorator form of ``register``."""

        def decorator(handler: Handler) -> Handler:
            return self.register(event_type, handler)

        return decorator

    def handlers_for(self, event_type: str) -> list[Handler]:
        with self._lock:
            generic = list(self._handlers.get(ANY_EVENT, ()))
            specific = (
                list(self._handlers.get(event_type, ()))
                if event_type != ANY_EVENT
                else []
            )
        return generic + specific

    @property
    def event_types(self) -> list[str]:
        with self._lock:
            return sorted(k for k, v in self._handlers.items() if v)

    async def dispatch(self, event: VerifiedEvent) -> DispatchResult:
        result = DispatchResult(event=event)

        for handler in self.handlers_for(event.type):
            name = handler_name(handler)
            try:
                if inspect.iscoroutinefunction(handler):
                    await handler(event)
                else:
                    outcome = await run_in_threadpool(handler, event)
                    if inspect.isawaitable(outcome):
                        await outcome
            except Exception as exc:
                logger.exception(
                    f"Webhook handler {name} failed for {event.type} (event {event.id})"
                )
                result.failures.append(HandlerError(name, event.type, exc))
            else:
                result.handled.append(name)

        logger.info(
            f"Dispatched {event.type} (event {event.id}): "
            f"{len(result.handled)} handled, {len(result.failures)} failed"
        )
        return result
