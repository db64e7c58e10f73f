# lnurl_auth/lnurl.py
"""
LNURL codec: bech32 encoding of plain https callback URLs.

    lnurl = bech32("lnurl", convertbits(utf8(url), 8, 5))

LNURLs are routinely longer than the 90 characters BIP-173 allows for
addresses, so decode() parses the string itself and only borrows the checksum
and bit-conversion primitives from the bech32 package (whose bech32_decode
enforces the address length limit).
"""

from bech32 import CHARSET, bech32_encode, bech32_verify_checksum, convertbits

LNURL_HRP = "lnurl"


def encode(url: str, uppercase: bool = False) -> str:
    """
    Encode a URL as an LNURL string.

    Upper-case output is equivalent for decoders and lets QR encoders use the
    denser alphanumeric mode.
    """
    data = convertbits(url.encode("utf-8"), 8, 5)
    encoded = bech32_encode(LNURL_HRP, data)
    return encoded.upper() if uppercase else encoded


def decode(lnurl: str) -> str:
    """
    Decode an LNURL string (any single case, optional "lightning:" prefix).

    Raises ValueError on a bad prefix, character set, case mix or checksum.
    """
    s = str(lnurl).strip()
    if s.lower().startswith("lightning:"):
        s = s[len("lightning:"):]

    if s.lower() != s and s.upper() != s:
        raise ValueError("mixed case lnurl")
    s = s.lower()

    pos = s.rfind("1")
    if pos < 1 or pos + 7 > len(s):
        raise ValueError("missing bech32 separator")

    hrp = s[:pos]
    if hrp != LNURL_HRP:
        raise ValueError(f"unexpected hrp: {hrp!r}")

    try:
        data = [CHARSET.index(c) for c in s[pos + 1:]]
    except ValueError:
        raise ValueError("invalid bech32 character") from None

    if not bech32_verify_checksum(hrp, data):
        raise ValueError("bad bech32 checksum")

    raw = convertbits(data[:-6], 5, 8, False)
    if raw is None:
        raise ValueError("invalid bech32 padding")
    return bytes(raw).decode("utf-8")
