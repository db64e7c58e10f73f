# lnurl_auth/challenge.py
#
# Challenge issuance (login page path).
#
# The browser's cookie session only remembers which k1 it was shown:
#     session["lnurl_auth"] = {"k1": "<hex>"}
# Everything else about the attempt lives in the SessionStore under that k1.

import secrets
from typing import Any, Dict, MutableMapping, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import structlog
from starlette.concurrency import run_in_threadpool

from . import lnurl
from .audit import AuditLog
from .config import Settings
from .qr import make_qr_data_uri
from .storage import AuthRecord, SessionStore

logger = structlog.get_logger(__name__)

SESSION_KEY = "lnurl_auth"
LOGIN_TAG = "login"
K1_BYTES = 32

# href used when URI_SCHEME is empty: the QR code is shown but not clickable
PLACEHOLDER_HREF = "#"

# re-draws before giving up on a fresh k1 (a collision at 256 bits means a broken RNG)
MAX_K1_ATTEMPTS = 3


def generate_k1(nbytes: int = K1_BYTES) -> str:
    return secrets.token_hex(nbytes)


def build_callback_url(base_url: str, k1: str) -> str:
    """
    Append k1 and the login tag to the callback base URL:

        <base>?<existing params>&k1=<k1>&tag=login

    Existing query parameters are kept; stale k1/tag values are replaced.
    """
    p = urlparse(base_url)
    params = [(k, v) for k, v in parse_qsl(p.query, keep_blank_values=True) if k not in ("k1", "tag")]
    params += [("k1", k1), ("tag", LOGIN_TAG)]
    return urlunparse((p.scheme, p.netloc, p.path, p.params, urlencode(params), ""))


def session_k1(session: Optional[MutableMapping]) -> Optional[str]:
    if not session:
        return None
    sub = session.get(SESSION_KEY)
    if not isinstance(sub, dict):
        return None
    k1 = sub.get("k1")
    return str(k1) if k1 else None


class ChallengeIssuer:
    def __init__(self, settings: Settings, store: SessionStore, audit: Optional[AuditLog] = None):
        self.settings = settings
        self.store = store
        self.audit = audit

    async def ensure_challenge(self, session: MutableMapping) -> Tuple[str, bool]:
        """
        Return (k1, fresh) for the browser session.

        An existing k1 is reused while the store still holds it unlinked, so that
        a page reload never invalidates a QR code a wallet is about to answer.
        A linked k1 is spent and gets replaced, as does a missing or evicted one
        (exactly one store write).
        """
        k1 = session_k1(session)
        if k1:
            record = await self.store.get(k1)
            if record is not None and not record.is_linked:
                return k1, False

        k1 = await self._new_k1()
        await self.store.save(k1, AuthRecord(k1=k1))
        session[SESSION_KEY] = {"k1": k1}

        logger.info("challenge_issued", k1_prefix=k1[:8])
        if self.audit is not None:
            await run_in_threadpool(self.audit.record, "issued", "challenge_issued", k1=k1)
        return k1, True

    async def _new_k1(self) -> str:
        for _ in range(MAX_K1_ATTEMPTS):
            k1 = generate_k1()
            if await self.store.get(k1) is None:
                return k1
        raise RuntimeError("could not draw an unused k1")

    def encode(self, k1: str) -> Tuple[str, str]:
        """Return (encoded lnurl, href for the QR link)."""
        callback_url = build_callback_url(self.settings.CALLBACK_URL, k1)
        encoded = lnurl.encode(callback_url, uppercase=self.settings.URI_UPPERCASE)
        scheme = self.settings.URI_SCHEME
        href = f"{scheme}:{encoded}" if scheme else PLACEHOLDER_HREF
        return encoded, href

    def render_data(self, k1: str) -> Dict[str, Any]:
        s = self.settings
        encoded, href = self.encode(k1)
        # the QR carries the scheme-prefixed form so phone cameras open the wallet
        qr_payload = href if s.URI_SCHEME else encoded
        data_uri = make_qr_data_uri(
            qr_payload,
            image_type=s.QR_IMAGE_TYPE,
            error_correction=s.QR_ERROR_CORRECTION,
            margin=s.QR_MARGIN,
        )
        return {
            "title": s.TITLE,
            "instruction": s.INSTRUCTION,
            "refresh_seconds": s.REFRESH_SECONDS,
            "cancel_url": s.CANCEL_URL,
            "encoded": encoded,
            "href": href,
            "data_uri": data_uri,
        }

    async def login_page_data(self, session: MutableMapping) -> Dict[str, Any]:
        k1, _ = await self.ensure_challenge(session)
        return await run_in_threadpool(self.render_data, k1)
