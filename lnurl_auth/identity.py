"""
lnurl_auth/identity.py

Linking-key signature verification.

The signer sends, as hex query parameters:
  - key : its linking public key (SEC1, compressed 33 bytes or uncompressed 65)
  - sig : a DER-encoded ECDSA/secp256k1 signature

and the signed message is k1 itself: the 32 challenge bytes are used directly
as the digest (no extra hashing), exactly like libsecp256k1's ecdsa_verify.

Server verifies:
  1) all three values are valid hex, k1 is 32 bytes
  2) key is a point on secp256k1
  3) sig is strict DER with a low S value (libsecp256k1 rejects high-S)
  4) the ECDSA equation holds

Any malformed input is reported as an invalid signature, never as an error.
"""

import binascii

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed, decode_dss_signature

# Order of the secp256k1 group
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
SECP256K1_HALF_N = SECP256K1_N // 2

K1_BYTES = 32


def _hex(value: str) -> bytes:
    return binascii.unhexlify(str(value).strip())


def load_linking_key(key_hex: str) -> ec.EllipticCurvePublicKey:
    """Parse a hex SEC1 point. Raises ValueError on anything that is not one."""
    try:
        raw = _hex(key_hex)
    except (binascii.Error, ValueError):
        raise ValueError("linking key is not hex") from None
    return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), raw)


def normalize_linking_key(key_hex: str) -> str:
    """Lower-case hex, surrounding whitespace dropped."""
    return str(key_hex).strip().lower()


def verify_authorization_signature(sig_hex: str, k1_hex: str, key_hex: str) -> bool:
    """
    Verify an LNURL-auth signature.

    Returns:
      True  -> sig is a valid signature of k1 under key
      False -> anything else (bad encoding, wrong key, high-S, ...)
    """
    try:
        k1 = _hex(k1_hex)
        sig = _hex(sig_hex)
    except (binascii.Error, ValueError):
        return False

    if len(k1) != K1_BYTES:
        return False

    try:
        pubkey = load_linking_key(key_hex)
        _, s = decode_dss_signature(sig)
    except ValueError:
        return False

    if s > SECP256K1_HALF_N:
        return False

    try:
        pubkey.verify(sig, k1, ec.ECDSA(Prehashed(hashes.SHA256())))
    except InvalidSignature:
        return False
    return True
