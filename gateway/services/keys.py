import base64
import binascii
import secrets

from cryptography.hazmat.primitives.asymmetric import x25519
from cryptography.hazmat.primitives.serialization import Encoding, NoEncryption, PrivateFormat, PublicFormat

from gateway.services.errors import ValidationError

KEY_LEN = 32


class InvalidKeyError(ValidationError):
    pass


def _encode(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def generate_key_pair() -> tuple[str, str]:
    """Create a WireGuard key pair (private, public) in base64 form."""
    priv_obj = x25519.X25519PrivateKey.generate()
    priv_bytes = priv_obj.private_bytes(Encoding.Raw, PrivateFormat.Raw, NoEncryption())
    pub_bytes = priv_obj.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
    return _encode(priv_bytes), _encode(pub_bytes)


def generate_preshared_key() -> str:
    return _encode(secrets.token_bytes(KEY_LEN))


def parse_key(value: str) -> bytes:
    """Decode a base64 WireGuard key, rejecting anything that is not 32 bytes."""
    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidKeyError(f"invalid key encoding: {e}") from e
    if len(raw) != KEY_LEN:
        raise InvalidKeyError(f"invalid key length {len(raw)}, expected {KEY_LEN}")
    return raw


def public_key_for(private_key: str) -> str:
    priv_obj = x25519.X25519PrivateKey.from_private_bytes(parse_key(private_key))
    return _encode(priv_obj.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw))
