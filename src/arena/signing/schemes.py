"""Wallet signature schemes.

The exchange's two chains define incompatible canonical messages for
the same canonical JSON: Ethereum ABI-encodes and hashes it, Solana
signs the plain concatenation. Each scheme must match its chain exactly
or every signed call is rejected.
"""

from abc import ABC, abstractmethod

import base58
from eth_abi import encode as abi_encode
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import is_address, keccak, to_checksum_address
from nacl.signing import SigningKey

from arena.exceptions import ConfigurationError

_ABI_TYPES = ["string", "address", "address", "uint256"]

SOLANA_SECRET_KEY_BYTES = 64


class WalletScheme(ABC):
    """Signs the canonical JSON together with user, signer and nonce."""

    @property
    @abstractmethod
    def address(self) -> str:
        """Public address derived from the private key."""
        ...

    @abstractmethod
    def validate_address(self, address: str) -> None:
        """Raise ConfigurationError if address is not valid on this chain."""
        ...

    @abstractmethod
    def sign(self, payload: str, user: str, signer: str, nonce: int) -> str:
        """Return the encoded signature for one request."""
        ...


class EthereumScheme(WalletScheme):
    """secp256k1 ECDSA: keccak256(abi.encode(json, user, signer, nonce)) as a personal message."""

    def __init__(self, private_key: str) -> None:
        try:
            self._account = Account.from_key(private_key)
        except Exception as exc:
            raise ConfigurationError(f"Invalid Ethereum private key: {exc}") from exc

    @property
    def address(self) -> str:
        return self._account.address

    def validate_address(self, address: str) -> None:
        if not is_address(address):
            raise ConfigurationError(f"Invalid Ethereum address: {address!r}")

    def message_hash(self, payload: str, user: str, signer: str, nonce: int) -> bytes:
        """keccak256 of the ABI-encoded (string, address, address, uint256) tuple."""
        encoded = abi_encode(
            _ABI_TYPES,
            [payload, to_checksum_address(user), to_checksum_address(signer), nonce],
        )
        return keccak(encoded)

    def sign(self, payload: str, user: str, signer: str, nonce: int) -> str:
        digest = self.message_hash(payload, user, signer, nonce)
        signed = self._account.sign_message(encode_defunct(primitive=digest))
        return "0x" + bytes(signed.signature).hex()


def decode_solana_secret(private_key: str) -> bytes:
    """Decode a Solana secret key given as 0x-hex, bare 128-char hex, or base58."""
    try:
        if private_key.startswith("0x"):
            return bytes.fromhex(private_key[2:])
        if len(private_key) == 2 * SOLANA_SECRET_KEY_BYTES:
            return bytes.fromhex(private_key)
        return base58.b58decode(private_key)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid Solana private key format: {exc}") from exc


class SolanaScheme(WalletScheme):
    """Ed25519 detached signature over `json + user + signer + nonce`, base58 encoded."""

    def __init__(self, private_key: str) -> None:
        secret = decode_solana_secret(private_key)
        if len(secret) != SOLANA_SECRET_KEY_BYTES:
            raise ConfigurationError(
                f"Solana private key must be {SOLANA_SECRET_KEY_BYTES} bytes "
                f"(full secret key), got {len(secret)}"
            )
        signing_key = SigningKey(secret[:32])
        if bytes(signing_key.verify_key) != secret[32:]:
            raise ConfigurationError("Solana secret key public half does not match its seed")
        self._signing_key = signing_key

    @property
    def address(self) -> str:
        return base58.b58encode(bytes(self._signing_key.verify_key)).decode("ascii")

    def validate_address(self, address: str) -> None:
        try:
            decoded = base58.b58decode(address)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid Solana address: {address!r}") from exc
        if len(decoded) != 32:
            raise ConfigurationError(f"Invalid Solana address: {address!r}")

    def sign(self, payload: str, user: str, signer: str, nonce: int) -> str:
        message = f"{payload}{user}{signer}{nonce}".encode("utf-8")
        signature = self._signing_key.sign(message).signature
        return base58.b58encode(signature).decode("ascii")
