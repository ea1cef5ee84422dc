"""API-key authentication: HMAC-SHA256 over the sorted query string."""

import hashlib
import hmac
import time
from collections.abc import Mapping
from typing import Any

from arena.signing.base import RECV_WINDOW_MS, Clock, RequestSigner, SignedRequest
from arena.signing.canonical import encode_query, render_params
from arena.signing.credentials import KeyCredentials

API_KEY_HEADER = "X-MBX-APIKEY"


class KeyAuthenticator(RequestSigner):
    """Signs requests with the account's API secret.

    The API key itself travels as a static header on every call; the
    signature is appended last as `signature=<hex>`.
    """

    api_version = "v1"
    delete_in_body = False

    def __init__(
        self,
        credentials: KeyCredentials,
        recv_window_ms: int = RECV_WINDOW_MS,
        clock: Clock = time.time,
    ) -> None:
        super().__init__(recv_window_ms, clock)
        self._api_key = credentials.api_key
        self._secret = credentials.api_secret.encode("utf-8")

    def signature_for(self, query_string: str) -> str:
        """Hex HMAC-SHA256 of an already-encoded query string."""
        return hmac.new(self._secret, query_string.encode("utf-8"), hashlib.sha256).hexdigest()

    def sign(self, params: Mapping[str, Any]) -> SignedRequest:
        all_params = {
            **{k: v for k, v in params.items() if v is not None},
            "timestamp": self._timestamp_ms(),
            "recvWindow": self._recv_window_ms,
        }
        query = encode_query(all_params)
        signature = self.signature_for(query)

        rendered = render_params(all_params)
        ordered = {key: rendered[key] for key in sorted(rendered)}
        ordered["signature"] = signature

        return SignedRequest(
            params=ordered,
            encoded=f"{query}&signature={signature}",
            headers={API_KEY_HEADER: self._api_key},
        )
