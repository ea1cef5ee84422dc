"""Abstract request signer interface.

The exchange client only depends on this contract; which scheme is in
play is decided once, when the signer is built from credentials.
"""

import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

RECV_WINDOW_MS = 50_000

Clock = Callable[[], float]


@dataclass(frozen=True)
class SignedRequest:
    """Parameters ready for transmission.

    encoded is the exact wire string (query string or form body) the
    signature was computed over or alongside; transports must send it
    verbatim rather than re-encoding params.
    """

    params: dict[str, str]
    encoded: str
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def signature(self) -> str:
        return self.params["signature"]


class RequestSigner(ABC):
    """Turns unsigned request parameters into signed ones.

    Attributes:
        api_version: REST surface this auth mode is accepted on.
        delete_in_body: Whether DELETE requests carry params in the body.
    """

    api_version: str = "v1"
    delete_in_body: bool = False

    def __init__(self, recv_window_ms: int = RECV_WINDOW_MS, clock: Clock = time.time) -> None:
        self._recv_window_ms = recv_window_ms
        self._clock = clock

    def _timestamp_ms(self) -> int:
        return int(self._clock() * 1000)

    @abstractmethod
    def sign(self, params: Mapping[str, Any]) -> SignedRequest:
        """Sign params. Deterministic for a fixed clock and identical input.

        Raises:
            SignatureError: If no signature can be produced.
        """
        ...
