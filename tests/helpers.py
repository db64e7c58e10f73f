"""Signer-side helpers: what a wallet does with the QR code."""

import re
from urllib.parse import parse_qs, urlparse

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    Prehashed,
    decode_dss_signature,
    encode_dss_signature,
)

from lnurl_auth import lnurl
from lnurl_auth.identity import SECP256K1_HALF_N, SECP256K1_N


class LinkingKey:
    def __init__(self):
        self.private_key = ec.generate_private_key(ec.SECP256K1())

    def public_hex(self, compressed: bool = True) -> str:
        fmt = serialization.PublicFormat.CompressedPoint if compressed else serialization.PublicFormat.UncompressedPoint
        return self.private_key.public_key().public_bytes(serialization.Encoding.X962, fmt).hex()

    def sign(self, k1: str, low_s: bool = True) -> str:
        der = self.private_key.sign(bytes.fromhex(k1), ec.ECDSA(Prehashed(hashes.SHA256())))
        r, s = decode_dss_signature(der)
        if low_s and s > SECP256K1_HALF_N:
            s = SECP256K1_N - s
        if not low_s and s <= SECP256K1_HALF_N:
            s = SECP256K1_N - s
        return encode_dss_signature(r, s).hex()

    def callback_params(self, k1: str) -> dict:
        return {"k1": k1, "sig": self.sign(k1), "key": self.public_hex()}


ENCODED_RE = re.compile(r'<code id="encoded">([^<]+)</code>')
HREF_RE = re.compile(r'<a id="qrcode" href="([^"]*)">')


def extract_encoded(html: str):
    m = ENCODED_RE.search(html)
    return m.group(1) if m else None


def extract_href(html: str):
    m = HREF_RE.search(html)
    return m.group(1) if m else None


def extract_k1(html: str):
    encoded = extract_encoded(html)
    if not encoded:
        return None
    params = parse_qs(urlparse(lnurl.decode(encoded)).query)
    return params["k1"][0]


CALLBACK_URL = "http://localhost:3000/login"


def make_settings(**overrides):
    from lnurl_auth.config import Settings

    values = dict(CALLBACK_URL=CALLBACK_URL, SESSION_SECRET="test-secret", REFRESH_SECONDS=5)
    values.update(overrides)
    return Settings(_env_file=None, **values)
