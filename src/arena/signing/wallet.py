"""Wallet authentication: canonical JSON signed by an on-chain key."""

import time
from collections.abc import Mapping
from typing import Any

from arena.exceptions import ConfigurationError, SignatureError
from arena.logging import get_logger
from arena.signing.base import RECV_WINDOW_MS, Clock, RequestSigner, SignedRequest
from arena.signing.canonical import canonical_json, encode_form, render_params
from arena.signing.credentials import WalletCredentials
from arena.signing.schemes import WalletScheme

logger = get_logger(__name__)

# Sent alongside the signature but never part of the signed JSON
_UNSIGNED_FIELDS = frozenset({"nonce", "user", "signer"})


class WalletAuthenticator(RequestSigner):
    """Signs requests for a wallet, delegating the curve math to a WalletScheme.

    Transmitted params are `{...params, nonce, user, signer, signature,
    timestamp, recvWindow}`, form-encoded.
    """

    api_version = "v3"
    delete_in_body = True

    def __init__(
        self,
        credentials: WalletCredentials,
        scheme: WalletScheme,
        recv_window_ms: int = RECV_WINDOW_MS,
        clock: Clock = time.time,
    ) -> None:
        super().__init__(recv_window_ms, clock)
        if not credentials.wallet_address:
            raise ConfigurationError("wallet_address is required for wallet authentication")
        if not credentials.effective_signer:
            raise ConfigurationError(
                f"signer_address is required for {credentials.curve.value} authentication"
            )
        scheme.validate_address(credentials.wallet_address)
        scheme.validate_address(credentials.effective_signer)

        self._user = credentials.wallet_address
        self._signer = credentials.effective_signer
        self._scheme = scheme
        self._curve = credentials.curve

    def _nonce(self) -> int:
        """Wall-clock microseconds."""
        return int(self._clock() * 1_000_000)

    def signing_payload(self, params: Mapping[str, Any]) -> str:
        """Canonical JSON over everything except nonce, user and signer."""
        return canonical_json({k: v for k, v in params.items() if k not in _UNSIGNED_FIELDS})

    def sign(self, params: Mapping[str, Any]) -> SignedRequest:
        filtered = {k: v for k, v in params.items() if v is not None}
        nonce = self._nonce()
        timestamp = self._timestamp_ms()

        signature_params = {
            **filtered,
            "nonce": nonce,
            "timestamp": timestamp,
            "recvWindow": self._recv_window_ms,
            "user": self._user,
            "signer": self._signer,
        }
        payload = self.signing_payload(signature_params)

        try:
            signature = self._scheme.sign(payload, self._user, self._signer, nonce)
        except Exception as exc:
            logger.error(
                "wallet_signing_failed",
                curve=self._curve.value,
                error=str(exc),
            )
            raise SignatureError(f"Failed to sign request with {self._curve.value}: {exc}") from exc

        transmitted = render_params(
            {
                **filtered,
                "nonce": nonce,
                "user": self._user,
                "signer": self._signer,
                "signature": signature,
                "timestamp": timestamp,
                "recvWindow": self._recv_window_ms,
            }
        )
        return SignedRequest(params=transmitted, encoded=encode_form(transmitted))
