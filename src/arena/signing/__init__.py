"""Request signing -- HMAC key auth and wallet auth (Ethereum ECDSA / Solana Ed25519)."""

import time

from arena.exceptions import ConfigurationError
from arena.signing.base import RECV_WINDOW_MS, Clock, RequestSigner, SignedRequest
from arena.signing.credentials import (
    Credentials,
    Curve,
    KeyCredentials,
    WalletCredentials,
    credentials_from_settings,
)
from arena.signing.key import KeyAuthenticator
from arena.signing.schemes import EthereumScheme, SolanaScheme, WalletScheme
from arena.signing.wallet import WalletAuthenticator


def build_signer(
    credentials: Credentials,
    recv_window_ms: int = RECV_WINDOW_MS,
    clock: Clock = time.time,
) -> RequestSigner:
    """Select the signer variant from the credential shape, once, at construction.

    Raises:
        ConfigurationError: If the credentials cannot produce a working signer.
    """
    if isinstance(credentials, KeyCredentials):
        return KeyAuthenticator(credentials, recv_window_ms=recv_window_ms, clock=clock)
    if isinstance(credentials, WalletCredentials):
        scheme: WalletScheme
        if credentials.curve is Curve.ETHEREUM:
            scheme = EthereumScheme(credentials.private_key)
        else:
            scheme = SolanaScheme(credentials.private_key)
        return WalletAuthenticator(credentials, scheme, recv_window_ms=recv_window_ms, clock=clock)
    raise ConfigurationError(f"Unsupported credentials type: {type(credentials).__name__}")


__all__ = [
    "Credentials",
    "Curve",
    "EthereumScheme",
    "KeyAuthenticator",
    "KeyCredentials",
    "RequestSigner",
    "SignedRequest",
    "SolanaScheme",
    "WalletAuthenticator",
    "WalletCredentials",
    "build_signer",
    "credentials_from_settings",
]
