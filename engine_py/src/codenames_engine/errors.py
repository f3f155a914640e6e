# engine_py/src/codenames_engine/errors.py

class GameError(Exception):
    """Base exception for game-related errors."""
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: str = None):
        self.code = code or self.code
        self.message = message
        super().__init__(f"[{self.code}] {message}")


# Specific error codes
INVALID_INPUT = "INVALID_INPUT"
INVALID_WORD_LIST = "INVALID_WORD_LIST"
INVALID_CLUE = "INVALID_CLUE"
INVALID_ACTION = "INVALID_ACTION"
NOT_FOUND = "NOT_FOUND"
WRITE_ERROR = "WRITE_ERROR"
STALE_WRITE = "STALE_WRITE"
PRESENCE_ERROR = "PRESENCE_ERROR"
PRESENCE_TIMEOUT = "PRESENCE_TIMEOUT"
ACTION_NOT_ALLOWED = "ACTION_NOT_ALLOWED"
INTERNAL_ERROR = "INTERNAL_ERROR"


class InvalidInput(GameError):
    """Malformed deck or word list."""
    code = INVALID_INPUT


class InvalidWordList(InvalidInput):
    code = INVALID_WORD_LIST


class InvalidClue(GameError):
    code = INVALID_CLUE


class InvalidAction(GameError):
    """Rejected history entry or out-of-range card action."""
    code = INVALID_ACTION


class NotFound(GameError):
    code = NOT_FOUND


class WriteError(GameError):
    """The store rejected a mutation."""
    code = WRITE_ERROR


class StaleWrite(WriteError):
    """A conditional write lost against a newer version."""
    code = STALE_WRITE

    def __init__(self, message: str, expected_version: int = None, actual_version: int = None):
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(message)


class PresenceError(GameError):
    """The membership channel could not be joined."""
    code = PRESENCE_ERROR


class PresenceTimeout(PresenceError):
    code = PRESENCE_TIMEOUT


class ActionNotAllowed(GameError):
    code = ACTION_NOT_ALLOWED


ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (
        InvalidInput, InvalidWordList, InvalidClue, InvalidAction, NotFound,
        WriteError, StaleWrite, PresenceError, PresenceTimeout, ActionNotAllowed,
    )
}


# Helper function to raise common errors
def raise_error(code: str, message: str):
    raise ERRORS_BY_CODE.get(code, GameError)(message)
