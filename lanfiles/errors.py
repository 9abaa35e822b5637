from __future__ import annotations


class ConfinementError(PermissionError):
    """Raised when a client path resolves outside the served root."""

    def __init__(self, message: str = 'Invalid path'):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ParameterError(ValueError):
    pass


class NotTextError(ValueError):
    pass


class UploadTooLargeError(ValueError):
    def __init__(self, limit: int):
        super().__init__(f'Upload exceeds the {limit} byte limit')
        self.limit = limit


def os_error_message(exc: OSError) -> str:
    # strerror omits the absolute filename that str(exc) would carry
    return exc.strerror or str(exc)
