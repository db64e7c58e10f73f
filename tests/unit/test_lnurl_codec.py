"""Unit tests for the LNURL bech32 codec."""

import pytest

from lnurl_auth import lnurl

URL = "https://example.com/login?k1=" + "ab" * 32 + "&tag=login"


@pytest.mark.unit
class TestLnurlCodec:
    def test_encode_prefix(self) -> None:
        encoded = lnurl.encode(URL)
        assert encoded.startswith("lnurl1")
        assert encoded == encoded.lower()

    def test_long_urls_decode(self) -> None:
        encoded = lnurl.encode(URL)
        assert len(encoded) > 90
        assert lnurl.decode(encoded) == URL

    def test_uppercase(self) -> None:
        encoded = lnurl.encode(URL, uppercase=True)
        assert encoded.startswith("LNURL1")
        assert encoded == encoded.upper()
        assert lnurl.decode(encoded) == URL

    def test_lightning_prefix_accepted(self) -> None:
        assert lnurl.decode("lightning:" + lnurl.encode(URL)) == URL

    def test_mixed_case_rejected(self) -> None:
        encoded = lnurl.encode(URL)
        with pytest.raises(ValueError):
            lnurl.decode(encoded[:10] + encoded[10:].upper())

    def test_bad_checksum_rejected(self) -> None:
        encoded = lnurl.encode(URL)
        last = "q" if encoded[-1] != "q" else "p"
        with pytest.raises(ValueError):
            lnurl.decode(encoded[:-1] + last)

    def test_wrong_hrp_rejected(self) -> None:
        with pytest.raises(ValueError):
            lnurl.decode("bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4")

    def test_invalid_character_rejected(self) -> None:
        encoded = lnurl.encode(URL)
        with pytest.raises(ValueError):
            lnurl.decode(encoded[:8] + "b" + encoded[9:])
