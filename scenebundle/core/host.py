from __future__ import annotations

from enum import Enum
from typing import Callable, List, Optional, Protocol, Tuple


class HostEvent(Enum):
    COLLECTION_CREATED = "collection_created"
    COLLECTION_CHANGED = "collection_changed"


EventCallback = Callable[[HostEvent], None]


class SceneCollectionHost(Protocol):
    """
    What the bundle pipeline needs from the application that owns scene
    collections. add_collection() and set_current_collection() only queue
    the request; completion is announced later through an event callback,
    possibly from another thread.
    """

    def current_collection(self) -> str: ...

    def collection_file(self, name: Optional[str] = None) -> str:
        """Absolute path of the named (default: active) collection's JSON file."""
        ...

    def collection_names(self) -> List[str]: ...

    def canvas_size(self) -> Tuple[int, int]: ...

    def add_collection(self, name: str) -> None:
        """Create an empty collection, make it active, then emit COLLECTION_CREATED."""
        ...

    def set_current_collection(self, name: str) -> None:
        """Switch the active collection, then emit COLLECTION_CHANGED."""
        ...

    def add_event_callback(self, callback: EventCallback) -> None: ...

    def remove_event_callback(self, callback: EventCallback) -> None: ...
