class EngineError(Exception):
    """Caller-facing error. Never retried by the engine."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def kind(self) -> str:
        return type(self).__name__


class NotFound(EngineError):
    status_code = 404


class Forbidden(EngineError):
    status_code = 403


class InvalidTransition(EngineError):
    status_code = 409


class AlreadyCompleted(EngineError):
    status_code = 409


class ValidationError(EngineError):
    status_code = 400
