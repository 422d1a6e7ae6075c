# Standard library imports
from contextlib import contextmanager

# Third-party imports
import sqlalchemy as sa
from flask import request

# Local application imports
from app import db
from app.audit import audit_log_security_event
from app.errors import PoolNotFoundError, ValidationError, WrongStateError, NotPoolOwnerError
from app.models import Pool


@contextmanager
def atomic():
    """
    Run the enclosed block as one transaction on the request session.

    Commits when the block finishes and rolls back on any exception, which is
    then re-raised. Nothing is retried.
    """
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def lock_pool_row(pool_id):
    """
    Load a pool with a row lock for the rest of the transaction.

    Always reads the persisted row, never the identity map's copy, so the
    status checked is the status at this moment.
    """
    pool = db.session.scalar(
        sa.select(Pool)
        .where(Pool.id == pool_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    if pool is None:
        raise PoolNotFoundError()
    return pool


def get_pool_or_404(pool_id):
    pool = db.session.get(Pool, pool_id)
    if pool is None:
        raise PoolNotFoundError()
    return pool


def require_status(pool, action, *allowed):
    if pool.status not in allowed:
        raise WrongStateError(action, pool.status, allowed)


def require_owner(pool, user_id, action='manage pool'):
    if not pool.is_owned_by(user_id):
        audit_log_security_event('ACCESS_DENIED',
                                 f'User {user_id} attempted to {action} {pool.id} owned by {pool.owner_id}')
        raise NotPoolOwnerError()


def get_json_body():
    """Parsed JSON object from the request body, or a ValidationError."""
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError('Request body must be a JSON object')
    return body


def parse_int(value, field, minimum=None, maximum=None):
    """Strict integer parsing for JSON and path input. Booleans and floats are rejected."""
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be an integer')
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise ValidationError(f'{field} must be an integer')
    if not isinstance(value, int):
        raise ValidationError(f'{field} must be an integer')
    if minimum is not None and value < minimum:
        raise ValidationError(f'{field} must be at least {minimum}')
    if maximum is not None and value > maximum:
        raise ValidationError(f'{field} must be at most {maximum}')
    return value
