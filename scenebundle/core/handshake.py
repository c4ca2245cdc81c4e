from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

from scenebundle.config import HANDSHAKE_TIMEOUT_DEFAULT
from scenebundle.core.errors import HandshakeTimeoutError
from scenebundle.core.fsutil import write_json_safe
from scenebundle.core.host import HostEvent, SceneCollectionHost

logger = logging.getLogger(__name__)


class CollectionSwitcher:
    """
    Materializes a collection document as a new, active host collection.

    Order matters because the host creates and switches collections on its
    own event loop:
      1. create the empty collection          -> wait for COLLECTION_CREATED
      2. switch back to the previous one      -> wait for COLLECTION_CHANGED
      3. overwrite the new collection's file while it is not loaded
      4. switch to the new collection         -> wait for COLLECTION_CHANGED
    Until step 3 succeeds the previous collection stays authoritative.
    """

    def __init__(self, host: SceneCollectionHost, timeout: float = HANDSHAKE_TIMEOUT_DEFAULT):
        self.host = host
        self.timeout = timeout

    def _wait_for(
        self,
        event: HostEvent,
        phase: str,
        action: Callable[[], None],
        settled: Optional[Callable[[], bool]] = None,
    ) -> None:
        fired = threading.Event()

        def _on_event(evt: HostEvent) -> None:
            if evt == event:
                fired.set()

        # subscribe before acting; the host may answer immediately
        self.host.add_event_callback(_on_event)
        try:
            action()
            deadline = time.monotonic() + self.timeout
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0 or not fired.wait(remaining):
                    raise HandshakeTimeoutError(phase, self.timeout)
                if settled is None or settled():
                    break
                # a late event from an earlier phase; keep waiting
                fired.clear()
        finally:
            self.host.remove_event_callback(_on_event)
        logger.debug("Handshake phase done: %s", phase)

    def install(self, name: str, document: Dict[str, Any]) -> str:
        """
        Returns the path of the written collection file.
        Raises HandshakeTimeoutError or OSError. When the switch back to the
        previous collection times out it is requested once more without
        waiting. No collection file but the new one is ever written.
        """
        previous = self.host.current_collection()

        self._wait_for(
            HostEvent.COLLECTION_CREATED,
            "create collection",
            lambda: self.host.add_collection(name),
        )
        new_name = self.host.current_collection()
        new_file = self.host.collection_file(new_name)
        logger.info("Collection created: %s (%s)", new_name, new_file)

        try:
            self._wait_for(
                HostEvent.COLLECTION_CHANGED,
                "switch to previous collection",
                lambda: self.host.set_current_collection(previous),
                settled=lambda: self.host.current_collection() == previous,
            )
        except HandshakeTimeoutError:
            logger.warning("Host did not switch back to %s; requesting it again", previous)
            self.host.set_current_collection(previous)
            raise

        document["name"] = new_name
        write_json_safe(document, new_file)

        self._wait_for(
            HostEvent.COLLECTION_CHANGED,
            "switch to new collection",
            lambda: self.host.set_current_collection(new_name),
            settled=lambda: self.host.current_collection() == new_name,
        )
        logger.info("Collection installed: %s", new_name)
        return new_file
