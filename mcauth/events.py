import inspect
import re
from collections import defaultdict
from typing import Any, Awaitable, Callable, TypeAlias

Handler: TypeAlias = Callable[..., Any | Awaitable[Any]]


def subscribe(event: str):
    """Mark a method of an :class:`EventEmitter` subclass as an event handler.

    ``event`` is a regex matched against the full event name.
    """

    def wrapper(func: Callable[[Any, Any], Any]):
        setattr(func, "_listener_meta", event)

        return func

    return wrapper


class EventEmitter:
    _event_listeners: dict[str, list[Handler]]

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)

        items = {}
        for base in reversed(cls.__mro__):
            items.update(vars(base))

        # each subclass gets its own table so siblings don't share handlers
        cls._event_listeners = defaultdict(list)
        for item in items.values():
            if (meta := getattr(item, "_listener_meta", None)) is not None:
                cls._event_listeners[meta].append(item)

    def __init__(self):
        self._instance_listeners: dict[str, list[Handler]] = defaultdict(list)

    def on(self, event: str, handler: Handler) -> Handler:
        """Register ``handler(data)`` for events matching ``event`` on this instance."""
        self._instance_listeners[event].append(handler)
        return handler

    async def emit(self, event: str, data: Any = None) -> list[Any]:
        results = []

        for e, handlers in getattr(self, "_event_listeners", {}).items():
            if re.fullmatch(e, event):
                for handler in handlers:
                    results.append(await _call(handler, self, data))

        for e, handlers in self._instance_listeners.items():
            if re.fullmatch(e, event):
                for handler in handlers:
                    results.append(await _call(handler, data))

        return results


async def _call(handler: Handler, *args) -> Any:
    result = handler(*args)
    if inspect.isawaitable(result):
        result = await result
    return result
