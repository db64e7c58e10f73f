"""
Per-request identity resolution.

Once a session's auth record carries a verified linking public key, the
strategy hands that key to the application's resolve_identity callable and
turns its answer into one of four outcomes:

    no linking key              -> PASS     (neither accepted nor rejected)
    resolver returns identity   -> SUCCESS
    resolver returns None or
    a Rejection                 -> FAIL     (unauthenticated, with info)
    resolver raises             -> ERROR    (host answers 5xx, not 401)

resolve_identity may be a plain function or a coroutine function. It is called
at most once per evaluation, and only when a key is present.
"""

import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

import structlog

from .storage import AuthRecord

logger = structlog.get_logger(__name__)


class Outcome(str, Enum):
    PASS = "pass"
    SUCCESS = "success"
    FAIL = "fail"
    ERROR = "error"


@dataclass
class Rejection:
    reason: Optional[str] = None


@dataclass
class StrategyResult:
    outcome: Outcome
    identity: Any = None
    info: Optional[Rejection] = None
    error: Optional[BaseException] = None


class Strategy:
    name = "lnurl-auth"

    def __init__(self, resolve_identity: Callable):
        if not callable(resolve_identity):
            raise TypeError("Strategy requires a resolve_identity callable")
        self._resolve = resolve_identity

    async def authenticate(self, record: Optional[AuthRecord]) -> StrategyResult:
        linking_public_key = record.linking_public_key if record is not None else None
        if not linking_public_key:
            return StrategyResult(Outcome.PASS)

        try:
            answer = self._resolve(linking_public_key)
            if inspect.isawaitable(answer):
                answer = await answer
        except Exception as e:
            logger.error("identity_resolution_failed", key_prefix=linking_public_key[:12], exc_info=True)
            return StrategyResult(Outcome.ERROR, error=e)

        if answer is None:
            return StrategyResult(Outcome.FAIL, info=Rejection())
        if isinstance(answer, Rejection):
            return StrategyResult(Outcome.FAIL, info=answer)
        return StrategyResult(Outcome.SUCCESS, identity=answer)
