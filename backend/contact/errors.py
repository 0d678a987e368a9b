"""Error taxonomy shared by the socket handlers, REST blueprints and services.

Every error that should reach a client derives from ``GameError`` and carries
the message shown to the player plus the HTTP status used by the REST layer.
``StaleStateError`` is the exception to the rule: it marks actions that
target a round or game that has already moved on, which are logged and
dropped instead of being reported.
"""


class GameError(Exception):
    status_code = 400

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {'message': self.message}


class ValidationError(GameError):
    status_code = 400


class ForbiddenError(GameError):
    status_code = 403


class NotFoundError(GameError):
    status_code = 404


class ConflictError(GameError):
    status_code = 409


class PersistenceError(GameError):
    status_code = 503

    def __init__(self, message='Storage is unavailable, please try again'):
        super().__init__(message)


class StaleStateError(Exception):
    """The action refers to state that no longer accepts it."""
