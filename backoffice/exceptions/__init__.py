"""Custom exceptions for the vendor back office."""


class BackofficeError(Exception):
    """Base exception for all application errors."""
    kind = 'error'

    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['kind'] = self.kind
        rv['status'] = 'error'
        return rv


class ValidationError(BackofficeError):
    """Missing required field, disallowed target or non-invoiceable unit."""
    kind = 'validation'

    def __init__(self, message, payload=None):
        super().__init__(message, 400, payload)


class NotFoundError(BackofficeError):
    """Raised when a resource is absent or outside the tenant scope."""
    kind = 'not_found'

    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class AuthorizationError(BackofficeError):
    """Raised when override credentials are missing or wrong."""
    kind = 'authorization'

    def __init__(self, message="Authorization failed"):
        super().__init__(message, 403)


class LockedError(BackofficeError):
    """Raised when a verified unit is mutated without a valid override."""
    kind = 'locked'

    def __init__(self, message="Unit is verified and locked", payload=None):
        super().__init__(message, 423, payload)


class StoreError(BackofficeError):
    """
    Underlying read/write failure.

    For chunked bulk operations ``chunks_applied`` and ``affected_count``
    tell the caller how much of the operation was committed before the
    failure.
    """
    kind = 'store'

    def __init__(self, message="Store operation failed", chunks_applied=0, affected_count=0):
        super().__init__(
            message,
            500,
            {'chunks_applied': chunks_applied, 'affected_count': affected_count},
        )
        self.chunks_applied = chunks_applied
        self.affected_count = affected_count
