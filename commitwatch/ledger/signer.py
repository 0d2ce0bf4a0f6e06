from __future__ import annotations
import base64
import hashlib
from bech32 import bech32_decode, convertbits
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from commitwatch.core.errors import ConfigurationError

ED25519_FLAG = 0x00
SUI_PRIVKEY_HRP = "suiprivkey"
# IntentScope::TransactionData, IntentVersion::V0, AppId::Sui
TRANSACTION_INTENT = bytes([0, 0, 0])


def _decode_bech32(value: str) -> bytes:
    hrp, data = bech32_decode(value)
    if hrp != SUI_PRIVKEY_HRP or data is None:
        raise ConfigurationError("signing credential is not a valid suiprivkey string")
    raw = convertbits(data, 5, 8, False)
    if raw is None:
        raise ConfigurationError("signing credential is not a valid suiprivkey string")
    return bytes(raw)


class Ed25519Signer:
    """Watcher credential. Signs Sui transaction bytes with intent prefix."""

    def __init__(self, private_key: Ed25519PrivateKey):
        self._key = private_key
        self.public_key = private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)

    @classmethod
    def from_secret(cls, secret: str) -> "Ed25519Signer":
        """Accepts `suiprivkey1...` (bech32) or base64 of the 32-byte seed, optionally flag-prefixed."""
        secret = secret.strip()
        if secret.startswith(SUI_PRIVKEY_HRP):
            raw = _decode_bech32(secret)
        else:
            try:
                raw = base64.b64decode(secret, validate=True)
            except ValueError as e:
                raise ConfigurationError("signing credential is neither suiprivkey nor base64") from e
        if len(raw) == 33:
            if raw[0] != ED25519_FLAG:
                raise ConfigurationError(f"unsupported key scheme flag: {raw[0]}")
            raw = raw[1:]
        if len(raw) != 32:
            raise ConfigurationError("Invalid Ed25519 private key length")
        return cls(Ed25519PrivateKey.from_private_bytes(raw))

    @property
    def address(self) -> str:
        digest = hashlib.blake2b(bytes([ED25519_FLAG]) + self.public_key, digest_size=32).digest()
        return "0x" + digest.hex()

    def sign_transaction(self, tx_bytes_b64: str) -> str:
        """Return the serialized signature `flag || sig || pubkey` in base64."""
        tx_bytes = base64.b64decode(tx_bytes_b64)
        digest = hashlib.blake2b(TRANSACTION_INTENT + tx_bytes, digest_size=32).digest()
        sig = self._key.sign(digest)
        return base64.b64encode(bytes([ED25519_FLAG]) + sig + self.public_key).decode("ascii")
