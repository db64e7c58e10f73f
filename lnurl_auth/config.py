import secrets
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse, urlunparse

from pydantic import ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError
from .qr import ERROR_CORRECTION_LEVELS, IMAGE_TYPES

DEFAULT_LOGIN_TEMPLATE = Path(__file__).resolve().parent / "templates" / "login.html"


class Settings(BaseSettings):
    # Externally reachable URL of the login endpoint; the signer calls it.
    CALLBACK_URL: str = ""

    # Cancel button target; unset hides the button.
    CANCEL_URL: Optional[str] = None

    # login page display
    TITLE: str = "Login with Lightning"
    INSTRUCTION: str = "Scan the QR code with an LNURL-auth capable wallet, or tap it on your phone."
    REFRESH_SECONDS: int = 5
    LOGIN_TEMPLATE_PATH: Path = DEFAULT_LOGIN_TEMPLATE

    # encoded URI: "<URI_SCHEME>:<lnurl>", empty scheme renders a placeholder link
    URI_SCHEME: str = "lightning"
    URI_UPPERCASE: bool = False

    # passed through to the QR renderer
    QR_ERROR_CORRECTION: str = "L"
    QR_MARGIN: int = 2
    QR_IMAGE_TYPE: str = "image/png"

    # cookie session + challenge store; unset SESSION_SECRET means a per-process
    # random key, which only works for a single worker
    SESSION_SECRET: Optional[str] = None
    SESSION_TTL_SECONDS: int = 900
    REDIS_URL: Optional[str] = None
    REDIS_PREFIX: str = "lnurl-auth:"

    AUDIT_LOG_PATH: Optional[Path] = None

    # routes
    LOGIN_PATH: str = "/login"
    LOGOUT_PATH: str = "/logout"
    AFTER_LOGIN_URL: str = "/"

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", validate_default=True)

    @field_validator("CALLBACK_URL")
    @classmethod
    def normalize_callback_url(cls, v: str) -> str:
        """
        CALLBACK_URL must be an absolute http(s) URL reachable by the signer.

        Normalization:
          - strip whitespace
          - require http/https and a hostname
          - lowercase hostname, keep port/path/query
          - drop fragment (never sent to the server anyway)
        """
        v = (v or "").strip()
        if not v:
            raise ValueError('Missing required option: "CALLBACK_URL"')

        p = urlparse(v)
        if p.scheme not in ("http", "https"):
            raise ValueError("CALLBACK_URL must start with http:// or https://")
        if not p.hostname:
            raise ValueError("CALLBACK_URL must include a hostname")

        netloc = p.hostname.lower()
        if p.port:
            netloc = f"{netloc}:{p.port}"
        return urlunparse((p.scheme, netloc, p.path or "/", p.params, p.query, ""))

    @field_validator("CANCEL_URL")
    @classmethod
    def normalize_cancel_url(cls, v):
        v = (v or "").strip()
        return v or None

    @field_validator("URI_SCHEME")
    @classmethod
    def normalize_uri_scheme(cls, v: str) -> str:
        # accept "lightning:" as well as "lightning"
        return (v or "").strip().rstrip(":")

    @field_validator("QR_ERROR_CORRECTION")
    @classmethod
    def check_error_correction(cls, v: str) -> str:
        v = (v or "").strip().upper()
        if v not in ERROR_CORRECTION_LEVELS:
            raise ValueError(f"QR_ERROR_CORRECTION must be one of {sorted(ERROR_CORRECTION_LEVELS)}")
        return v

    @field_validator("QR_IMAGE_TYPE")
    @classmethod
    def check_image_type(cls, v: str) -> str:
        v = (v or "").strip().lower()
        if v not in IMAGE_TYPES:
            raise ValueError(f"QR_IMAGE_TYPE must be one of {list(IMAGE_TYPES)}")
        return v

    @field_validator("REFRESH_SECONDS", "QR_MARGIN", "SESSION_TTL_SECONDS")
    @classmethod
    def non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @model_validator(mode="after")
    def check_session_secret(self) -> "Settings":
        if self.SESSION_SECRET:
            return self
        if self.REDIS_URL:
            # a shared store means several workers, which must sign cookies alike
            raise ValueError("SESSION_SECRET is required when REDIS_URL is set")
        self.SESSION_SECRET = secrets.token_hex(32)
        return self


def load_settings(**overrides) -> Settings:
    """
    Build Settings from the environment (+ overrides).

    Validation failures surface as ConfigurationError so that app construction
    fails with a single, readable error type.
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        messages = []
        for err in e.errors():
            loc = ".".join(str(x) for x in err.get("loc", ()))
            msg = str(err.get("msg", "")).removeprefix("Value error, ")
            messages.append(f"{loc}: {msg}" if loc else msg)
        raise ConfigurationError("; ".join(messages)) from e
