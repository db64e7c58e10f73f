# lnurl_auth/main.py
#
# -----------------------------------------------------------------------------
# Architectural notes (high level)
# -----------------------------------------------------------------------------
# This file is "thin" host glue: it binds the protocol pieces to FastAPI.
#   - It MUST NOT implement crypto itself (identity.py does).
#   - It keeps no state of its own; everything lives in the SessionStore
#     (k1 -> auth record) and the signed cookie session (browser -> k1).
#
# Key modules / responsibilities:
#   - config.py    : pydantic-settings options, validated at construction
#   - storage.py   : SessionStore contract, in-memory and Redis stores
#   - challenge.py : k1 issuance + login page render data
#   - lnurl.py     : bech32 LNURL codec
#   - qr.py        : QR data URI rendering (no security)
#   - identity.py  : secp256k1 signature verification
#   - callback.py  : signer callback ladder + status JSON
#   - strategy.py  : linking key -> application identity
#   - audit.py     : optional hash-chained audit log
#
# One endpoint, two lanes (same URL, chosen by query parameters):
#   - browser: GET /login            -> HTML page with QR code
#   - signer : GET /login?k1&sig&key -> {"status": "OK" | "ERROR", ...}
#
# Every later request can run authenticate_request(), which evaluates the
# strategy once and caches the result on request.state.
# -----------------------------------------------------------------------------

from pathlib import Path
from typing import Any, Callable, Optional

import structlog
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from jinja2 import TemplateError
from starlette.middleware.sessions import SessionMiddleware

from .audit import AuditLog
from .callback import UNEXPECTED_ERROR, CallbackHandler, CallbackResult, is_callback
from .challenge import ChallengeIssuer, session_k1
from .config import Settings, load_settings
from .errors import ConfigurationError
from .storage import InMemoryStore, RedisStore, SessionStore
from .strategy import Outcome, Strategy, StrategyResult

logger = structlog.get_logger(__name__)


# -----------------------------------------------------------------------------
# Login page template
# -----------------------------------------------------------------------------
class LoginPage:
    """
    Login page template, opened and compiled at construction.

    A missing or unreadable template is a configuration error: the server must
    not come up and fail on the first visitor instead.
    """

    option = "LOGIN_TEMPLATE_PATH"

    def __init__(self, template_path):
        path = Path(template_path)
        try:
            with open(path, "r", encoding="utf-8"):
                pass
        except FileNotFoundError:
            raise self._error("Does not exist") from None
        except PermissionError:
            raise self._error("Permission denied") from None
        except IsADirectoryError:
            raise self._error("Is a directory") from None

        self.name = path.name
        self.templates = Jinja2Templates(directory=str(path.parent))
        try:
            self.templates.get_template(self.name)
        except TemplateError as e:
            raise self._error(f"Invalid template ({e!s})") from e

    def _error(self, why: str) -> ConfigurationError:
        return ConfigurationError(f'Invalid option ("{self.option}"): Cannot open login template file: {why}')

    def render(self, request: Request, context: dict) -> HTMLResponse:
        return self.templates.TemplateResponse(request, self.name, context)


# -----------------------------------------------------------------------------
# Wiring
# -----------------------------------------------------------------------------
class LnurlAuth:
    """Everything one app instance needs; stored on app.state.lnurl_auth."""

    def __init__(
        self,
        settings: Settings,
        resolve_identity: Callable,
        store: Optional[SessionStore] = None,
        audit: Optional[AuditLog] = None,
    ):
        self.settings = settings
        self.store = store if store is not None else build_store(settings)
        if audit is None and settings.AUDIT_LOG_PATH:
            audit = AuditLog(settings.AUDIT_LOG_PATH)
        self.audit = audit
        self.login_page = LoginPage(settings.LOGIN_TEMPLATE_PATH)
        self.issuer = ChallengeIssuer(settings, self.store, audit=audit)
        self.callback = CallbackHandler(self.store, audit=audit)
        self.strategy = Strategy(resolve_identity)


def build_store(settings: Settings) -> SessionStore:
    ttl = settings.SESSION_TTL_SECONDS or None
    if settings.REDIS_URL:
        return RedisStore.from_url(settings.REDIS_URL, ttl_seconds=ttl, prefix=settings.REDIS_PREFIX)
    return InMemoryStore(ttl_seconds=ttl)


def _auth(request: Request) -> LnurlAuth:
    return request.app.state.lnurl_auth


# -----------------------------------------------------------------------------
# Dependencies (strategy binding)
# -----------------------------------------------------------------------------
async def authenticate_request(request: Request) -> StrategyResult:
    """
    Evaluate the strategy for this request, at most once.

    The auth record comes from request.state when this very request verified a
    signature, otherwise from the store via the cookie session's k1.
    """
    cached = getattr(request.state, "lnurl_auth_result", None)
    if cached is not None:
        return cached

    auth = _auth(request)
    record = getattr(request.state, "lnurl_auth", None)
    if record is None:
        k1 = session_k1(request.session)
        if k1:
            record = await auth.store.get(k1)

    result = await auth.strategy.authenticate(record)
    request.state.lnurl_auth_result = result
    return result


async def handle_callback(request: Request) -> CallbackResult:
    """
    Run the signer callback for this request.

    On success the stored record becomes this request's auth record, so a later
    authenticate_request() sees the verified key even without a cookie.
    """
    result = await _auth(request).callback.respond(
        request.query_params,
        request_ip=(request.client.host if request.client else None),
        user_agent=request.headers.get("user-agent"),
    )
    if result.record is not None:
        request.state.lnurl_auth = result.record
    return result


async def current_identity(result: StrategyResult = Depends(authenticate_request)) -> Any:
    """Identity or None (anonymous). Resolver errors become 500."""
    if result.outcome == Outcome.ERROR:
        raise HTTPException(500, UNEXPECTED_ERROR)
    if result.outcome == Outcome.SUCCESS:
        return result.identity
    return None


async def require_identity(result: StrategyResult = Depends(authenticate_request)) -> Any:
    if result.outcome == Outcome.ERROR:
        raise HTTPException(500, UNEXPECTED_ERROR)
    if result.outcome == Outcome.FAIL:
        reason = result.info.reason if result.info and result.info.reason else "not authorized"
        raise HTTPException(401, reason)
    if result.outcome == Outcome.PASS:
        raise HTTPException(401, "not authenticated")
    return result.identity


# -----------------------------------------------------------------------------
# FastAPI application
# -----------------------------------------------------------------------------
def create_app(
    resolve_identity: Callable,
    settings: Optional[Settings] = None,
    store: Optional[SessionStore] = None,
    audit: Optional[AuditLog] = None,
) -> FastAPI:
    """
    Build the login app.

    Raises ConfigurationError for bad options or an unusable login template,
    before any route exists.
    """
    settings = settings or load_settings()
    auth = LnurlAuth(settings, resolve_identity, store=store, audit=audit)

    app = FastAPI(title="LNURL Auth Server", version="0.1.0")
    app.state.lnurl_auth = auth
    app.add_middleware(SessionMiddleware, secret_key=settings.SESSION_SECRET, same_site="lax")

    @app.get(settings.LOGIN_PATH)
    async def login(request: Request):
        params = request.query_params

        if is_callback(params):
            result = await handle_callback(request)
            return JSONResponse(result.body, status_code=result.status_code)

        try:
            outcome = (await authenticate_request(request)).outcome
            if outcome == Outcome.SUCCESS:
                return RedirectResponse(settings.AFTER_LOGIN_URL, status_code=303)
            if outcome == Outcome.ERROR:
                return PlainTextResponse(UNEXPECTED_ERROR, status_code=500)

            data = await auth.issuer.login_page_data(request.session)
            return auth.login_page.render(request, data)
        except Exception:
            logger.exception("login_page_failed")
            return PlainTextResponse(UNEXPECTED_ERROR, status_code=500)

    @app.get(settings.LOGOUT_PATH)
    async def logout(request: Request):
        request.session.clear()
        return RedirectResponse(settings.AFTER_LOGIN_URL, status_code=303)

    return app
