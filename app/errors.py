"""
Error types raised by the pool engine and the handlers that turn them into
JSON responses.

Routes never build error responses for these themselves: the core raises,
register_error_handlers() translates.
"""

from typing import Any, Optional

from flask import jsonify
from werkzeug.exceptions import HTTPException

from app import db


class SquaresError(Exception):
    """Base class for every error the pool engine reports to its caller."""

    code = 'error'
    status_code = 400
    message = 'Request failed'

    def __init__(self, message: Optional[str] = None, details: Any = None):
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)

    def to_dict(self):
        body = {'success': False, 'code': self.code, 'error': self.message}
        if self.details is not None:
            body['details'] = self.details
        return body


class ValidationError(SquaresError):
    """Malformed input, rejected before any state is touched."""
    code = 'validation_error'
    status_code = 400
    message = 'Validation failed'


class PoolNotFoundError(SquaresError):
    code = 'pool_not_found'
    status_code = 404
    message = 'Pool not found'


class ScoreNotFoundError(SquaresError):
    code = 'score_not_found'
    status_code = 404
    message = 'Score not found'


class WrongStateError(SquaresError):
    """Operation attempted while the pool is in a status that does not allow it."""
    code = 'wrong_state'
    status_code = 409

    def __init__(self, action: str, status: str, allowed):
        self.action = action
        self.status = status
        self.allowed = tuple(allowed)
        super().__init__(
            f"Cannot {action} while pool is {status} (requires {' or '.join(self.allowed)})",
            details={'status': status, 'allowed': list(self.allowed)},
        )


class NotPoolOwnerError(SquaresError):
    code = 'not_pool_owner'
    status_code = 403
    message = 'Only the pool owner can do that'


class InvalidInviteCodeError(SquaresError):
    code = 'invalid_invite_code'
    status_code = 401
    message = 'Invalid invite code'


class ConflictError(SquaresError):
    code = 'conflict'
    status_code = 409
    message = 'Conflict'


class SquareAlreadyClaimedError(ConflictError):
    code = 'already_claimed'

    def __init__(self, row: int, col: int):
        self.row = row
        self.col = col
        super().__init__(f"Square ({row}, {col}) is already claimed", details={'row': row, 'col': col})


class ClaimLimitError(ConflictError):
    code = 'exceeds_limit'

    def __init__(self, limit: int, current: int, requested: int):
        self.limit = limit
        self.current = current
        self.requested = requested
        super().__init__(
            f"Would exceed max squares per user ({limit})",
            details={'limit': limit, 'current': current, 'requested': requested},
        )


class SquareNotClaimedError(ConflictError):
    code = 'not_claimed'
    message = 'Square is not claimed'


class NotSquareOwnerError(ConflictError):
    code = 'not_square_owner'
    status_code = 403
    message = 'You do not own this square'


class InvariantViolation(SquaresError):
    """Stored state contradicts an invariant. Indicates a bug, never a user error."""
    code = 'internal_error'
    status_code = 500
    message = 'Internal server error'


class UnresolvableDigitError(InvariantViolation):
    def __init__(self, digit: int, axis: str):
        self.digit = digit
        self.axis = axis
        super().__init__(f"Invalid digit assignment - digit {digit} not found in {axis} axis")


def register_error_handlers(app):
    """Register error handlers with the Flask application"""

    @app.errorhandler(InvariantViolation)
    def invariant_error(error):
        db.session.rollback()
        app.logger.exception(f"Invariant violation: {error.message}")
        return jsonify({'success': False, 'code': 'internal_error', 'error': 'Internal server error'}), 500

    @app.errorhandler(SquaresError)
    def squares_error(error):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def http_error(error):
        return jsonify({
            'success': False,
            'code': error.name.lower().replace(' ', '_'),
            'error': error.description,
        }), error.code

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({'success': False, 'code': 'internal_error', 'error': 'Internal server error'}), 500
