# lnurl_auth/callback.py
#
# -----------------------------------------------------------------------------
# Signer callback (response path)
# -----------------------------------------------------------------------------
# The wallet calls  CALLBACK_URL?k1=<hex>&tag=login&sig=<der hex>&key=<pubkey hex>
# usually from the phone, i.e. without the browser's cookie. The k1 alone finds
# the auth record in the SessionStore.
#
# Validation order (first failure wins, each one terminal):
#   1. k1, sig, key present                -> 400 Missing required parameter
#   2. k1 known to the store               -> 400 Secret does not match ...
#   3. sig valid for k1 under key          -> 400 Invalid signature
#   4. record not linked to another key    -> 400 Secret already used ...
#   5. record.linking_public_key = key, save
#
# Repeated deliveries of the same (k1, key) answer OK again; the first key to
# complete a challenge keeps it.
# -----------------------------------------------------------------------------

import asyncio
import weakref
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import structlog
from starlette.concurrency import run_in_threadpool

from .audit import AuditLog
from .errors import (
    AlreadyLinkedError,
    InvalidSignatureError,
    LnurlAuthError,
    ParameterError,
    UnknownSessionError,
)
from .identity import normalize_linking_key, verify_authorization_signature
from .models import StatusResponse
from .storage import AuthRecord, SessionStore

logger = structlog.get_logger(__name__)

RESPONSE_PARAMS = ("k1", "sig", "key")

UNEXPECTED_ERROR = "Unexpected error"


def is_callback(params: Mapping[str, Any]) -> bool:
    """Any response parameter routes the request to the callback path."""
    return any(name in params for name in RESPONSE_PARAMS)


@dataclass
class CallbackResult:
    status_code: int
    body: Dict[str, Any]
    record: Optional[AuthRecord] = None

    @property
    def ok(self) -> bool:
        return self.status_code == 200


class CallbackHandler:
    def __init__(self, store: SessionStore, audit: Optional[AuditLog] = None):
        self.store = store
        self.audit = audit
        # one lock per in-flight k1; entries vanish once no request holds them
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, k1: str) -> asyncio.Lock:
        lock = self._locks.get(k1)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[k1] = lock
        return lock

    async def _audit(self, result: str, reason: str, **fields) -> None:
        if self.audit is not None:
            await run_in_threadpool(self.audit.record, result, reason, **fields)

    async def verify(
        self,
        params: Mapping[str, Any],
        request_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuthRecord:
        """
        Run the validation ladder and link the key.

        Returns the stored record (linked). Raises ParameterError /
        ProtocolError subclasses for client mistakes and StoreError when the
        store fails.
        """
        values = {}
        for name in RESPONSE_PARAMS:
            value = str(params.get(name) or "").strip()
            if not value:
                raise ParameterError(name)
            values[name] = value

        k1 = values["k1"].lower()
        sig = values["sig"]
        key = normalize_linking_key(values["key"])
        ctx = dict(k1=k1, linking_key=key, signature=sig, request_ip=request_ip, user_agent=user_agent)

        try:
            record = await self.store.get(k1)
            if record is None:
                raise UnknownSessionError()

            ok = await run_in_threadpool(verify_authorization_signature, sig, k1, key)
            if not ok:
                raise InvalidSignatureError()

            async with self._lock_for(k1):
                # re-read: another delivery may have linked it meanwhile
                record = await self.store.get(k1)
                if record is None:
                    raise UnknownSessionError()

                if record.is_linked:
                    if record.linking_public_key != key:
                        raise AlreadyLinkedError()
                    logger.info("linking_key_reverified", k1_prefix=k1[:8], key_prefix=key[:12])
                    return record

                record.linking_public_key = key
                await self.store.save(k1, record)
        except LnurlAuthError as e:
            if e.status_code < 500:
                await self._audit("denied", type(e).__name__, **ctx)
            raise

        logger.info("linking_key_verified", k1_prefix=k1[:8], key_prefix=key[:12])
        await self._audit("approved", "signature_valid", **ctx)
        return record

    async def respond(self, params: Mapping[str, Any], **ctx) -> CallbackResult:
        """
        Callback boundary: always produces a status body, never raises.

        Client errors keep their precise reason; everything else is logged with
        full detail and answered with a generic message.
        """
        try:
            record = await self.verify(params, **ctx)
        except LnurlAuthError as e:
            if e.status_code >= 500:
                logger.error("callback_store_error", error=str(e), exc_info=True)
                return CallbackResult(500, StatusResponse.error(UNEXPECTED_ERROR).to_dict())
            logger.info("callback_rejected", reason=e.message)
            return CallbackResult(e.status_code, StatusResponse.error(e.message).to_dict())
        except Exception:
            logger.exception("callback_unexpected_error")
            return CallbackResult(500, StatusResponse.error(UNEXPECTED_ERROR).to_dict())

        return CallbackResult(200, StatusResponse.ok().to_dict(), record)
