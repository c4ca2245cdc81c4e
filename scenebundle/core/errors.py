from __future__ import annotations


class BundleError(Exception):
    """Base class for failures raised inside the bundle pipeline."""


class HandshakeTimeoutError(BundleError):
    def __init__(self, phase: str, timeout: float):
        super().__init__(f"Host did not complete '{phase}' within {timeout:.1f}s")
        self.phase = phase
        self.timeout = timeout


class UnsafeEntryError(BundleError):
    def __init__(self, name: str):
        super().__init__(f"Archive entry escapes destination: {name}")
        self.name = name
