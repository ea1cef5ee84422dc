"""Credential shapes for the two authentication modes.

A client holds exactly one of these for its whole lifetime. Keys are
supplied by the caller; nothing here generates or rotates them.
"""

from dataclasses import dataclass
from enum import Enum

from arena.config import ExchangeSettings
from arena.exceptions import ConfigurationError


class Curve(str, Enum):
    """Wallet signature scheme, named after the chain that defines it."""

    ETHEREUM = "ethereum"  # secp256k1 ECDSA over an ABI-encoded digest
    SOLANA = "solana"  # Ed25519 over the plain concatenated message


@dataclass(frozen=True)
class KeyCredentials:
    """API key + secret for HMAC query signing."""

    api_key: str
    api_secret: str

    def __repr__(self) -> str:
        return f"KeyCredentials(api_key={self.api_key[:4]}***)"


@dataclass(frozen=True)
class WalletCredentials:
    """Wallet-based credentials.

    wallet_address is sent as `user`, signer_address as `signer`. For
    Solana an empty signer_address means the wallet signs for itself.
    """

    wallet_address: str
    private_key: str
    curve: Curve
    signer_address: str = ""

    @property
    def effective_signer(self) -> str:
        if self.curve is Curve.SOLANA and not self.signer_address:
            return self.wallet_address
        return self.signer_address

    def __repr__(self) -> str:
        return (
            f"WalletCredentials(wallet_address={self.wallet_address}, "
            f"signer_address={self.signer_address}, curve={self.curve.value})"
        )


Credentials = KeyCredentials | WalletCredentials


def credentials_from_settings(settings: ExchangeSettings) -> Credentials:
    """Build the single active credential set from exchange settings.

    When auth_type is unset the mode is inferred: a private key means
    wallet auth (0x-prefixed wallet address selects Ethereum, anything
    else Solana), otherwise key auth.

    Raises:
        ConfigurationError: If no mode can be resolved or its fields are incomplete.
    """
    api_key = settings.api_key.get_secret_value()
    api_secret = settings.api_secret.get_secret_value()
    private_key = settings.private_key.get_secret_value()

    auth_type = settings.auth_type
    if auth_type is None:
        if private_key:
            auth_type = "ethereum" if settings.wallet_address.startswith("0x") else "solana"
        elif api_key or api_secret:
            auth_type = "api_key"
        else:
            raise ConfigurationError("No exchange credentials configured")

    if auth_type == "api_key":
        if not api_key or not api_secret:
            raise ConfigurationError("API key and secret are required for key authentication")
        return KeyCredentials(api_key=api_key, api_secret=api_secret)

    if not settings.wallet_address or not private_key:
        raise ConfigurationError(
            f"wallet_address and private_key are required for {auth_type} authentication"
        )
    return WalletCredentials(
        wallet_address=settings.wallet_address,
        signer_address=settings.signer_address,
        private_key=private_key,
        curve=Curve(auth_type),
    )
