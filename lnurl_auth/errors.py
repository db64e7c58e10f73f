# lnurl_auth/errors.py
"""
Error taxonomy for the login flow.

Every error raised on purpose carries the HTTP status the callback boundary
answers with and a stable, operator-facing message. Anything else that escapes
the protocol code is treated as unexpected and reported as a generic 500.
"""

from typing import Optional


class LnurlAuthError(Exception):
    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ParameterError(LnurlAuthError):
    """A required callback parameter is absent."""

    status_code = 400

    def __init__(self, name: str):
        super().__init__(f'Missing required parameter: "{name}"')
        self.parameter = name


class ProtocolError(LnurlAuthError):
    status_code = 400


class UnknownSessionError(ProtocolError):
    def __init__(self):
        super().__init__("Secret does not match any known session")


class InvalidSignatureError(ProtocolError):
    def __init__(self):
        super().__init__("Invalid signature")


class AlreadyLinkedError(ProtocolError):
    def __init__(self):
        super().__init__("Secret already used by a different linking key")


class StoreError(LnurlAuthError):
    """Session store I/O failed. Never shown to clients verbatim."""

    status_code = 500


class ConfigurationError(LnurlAuthError):
    """Raised while constructing the app; the server must not start."""

    def __init__(self, message: str):
        super().__init__(message, status_code=500)
