"""Host page lifecycle signals the recorder flushes on."""
from collections import defaultdict
from typing import Callable, Dict, List


class LifecycleEvent:
    VISIBILITY_CHANGE = "visibilitychange"
    PAGE_HIDE = "pagehide"
    BEFORE_UNLOAD = "beforeunload"


class VisibilityState:
    VISIBLE = "visible"
    HIDDEN = "hidden"


class Lifecycle:
    """Minimal listener registry the hosting environment dispatches into."""

    def __init__(self):
        self._listeners: Dict[str, List[Callable[..., None]]] = defaultdict(list)

    def add_listener(self, name: str, callback: Callable[..., None]) -> None:
        self._listeners[name].append(callback)

    def listener_count(self, name: str) -> int:
        return len(self._listeners.get(name, []))

    def dispatch(self, name: str, *args) -> None:
        for callback in list(self._listeners.get(name, [])):
            callback(*args)
