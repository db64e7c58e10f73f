from .callback import CallbackHandler, CallbackResult
from .challenge import ChallengeIssuer
from .config import Settings, load_settings
from .errors import (
    AlreadyLinkedError,
    ConfigurationError,
    InvalidSignatureError,
    LnurlAuthError,
    ParameterError,
    ProtocolError,
    StoreError,
    UnknownSessionError,
)
from .main import authenticate_request, create_app, current_identity, handle_callback, require_identity
from .storage import AuthRecord, InMemoryStore, RedisStore, SessionStore
from .strategy import Outcome, Rejection, Strategy, StrategyResult

__version__ = "0.1.0"
