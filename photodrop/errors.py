"""Error taxonomy shared by the store, services and API layer.

Each error carries the HTTP status the API maps it to, a stable ``code`` used
in the audit trail, and a ``public_message`` that is safe to show to an
anonymous client. Authorization failures deliberately share one public message
per credential type so a caller cannot tell which check rejected it.
"""


class DeliveryError(Exception):
    status_code = 500
    code = "internal_error"
    public_message = "Internal server error"
    # Validation and lookup errors describe the caller's own request, so
    # their message is returned as-is.
    expose_message = False

    def __init__(self, message: str | None = None):
        super().__init__(message or self.public_message)

    @property
    def detail(self) -> str:
        return str(self) if self.expose_message else self.public_message


class ValidationError(DeliveryError):
    status_code = 400
    code = "invalid_request"
    public_message = "Invalid request data"
    expose_message = True


class NotFoundError(DeliveryError):
    status_code = 404
    code = "not_found"
    public_message = "Not found"
    expose_message = True


class InternalError(DeliveryError):
    pass


# --- Authorization (403) ---

class AuthError(DeliveryError):
    status_code = 403
    code = "access_denied"
    public_message = "Access denied"


PIN_DENIED = "Invalid or expired PIN"
LINK_DENIED = "Download link is invalid or has expired"


class InvalidPin(AuthError):
    code = "invalid_pin"
    public_message = PIN_DENIED


class AttemptsExceeded(AuthError):
    code = "attempts_exceeded"
    public_message = PIN_DENIED


class AccessMismatch(AuthError):
    code = "access_mismatch"
    public_message = PIN_DENIED


class DownloadsDisabled(AuthError):
    code = "downloads_disabled"
    public_message = "Downloads are not enabled for this collection"


class ShareExpired(AuthError):
    code = "share_expired"
    public_message = "Access link has expired"


class Expired(AuthError):
    code = "link_expired"
    public_message = LINK_DENIED


class BadSignature(AuthError):
    code = "bad_signature"
    public_message = LINK_DENIED


class AccessDenied(AuthError):
    code = "path_denied"
    public_message = LINK_DENIED


class PasswordRequired(AuthError):
    code = "password_required"
    public_message = "This gallery is password protected"
