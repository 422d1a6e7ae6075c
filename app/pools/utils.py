"""
Pool lifecycle: creation, settings, and the open -> locked -> numbered state
machine, including the scheduled auto-lock sweep.

Every transition re-reads the pool row under a row lock inside one
transaction, checks ownership and the persisted status, then writes. Events
are logged after the transaction commits.
"""

import json
import secrets
from datetime import datetime
from typing import Any, Dict, Optional

import sqlalchemy as sa
from flask import current_app
from werkzeug.security import generate_password_hash, check_password_hash

from app import db
from app.audit import audit_log_pool_action, audit_log_security_event, audit_log_system_event
from app.errors import InvalidInviteCodeError, InvariantViolation, ValidationError
from app.event_log import log_event
from app.game.randomize import generate_axis_digits, validate_digits
from app.models import Pool, Square, AxisAssignment, utcnow
from app.utils import atomic, get_pool_or_404, lock_pool_row, require_owner, require_status

AUTO_LOCK_STATUSES = ('open', 'locked')


class FieldChanges:
    """
    The pool fields one update supplies, and their new values.

    A field absent from the mapping was not supplied and is left alone; a
    field present with None is an explicit clear. Forms submit a clear as
    null or an empty string, and only for their NULLABLE_FIELDS.
    """

    METADATA_FIELDS = ('name', 'game_name', 'home_team', 'away_team', 'game_time', 'entry_fee_info', 'rules')
    SETTINGS_FIELDS = ('square_price', 'max_squares_per_user')

    def __init__(self, values: Optional[Dict[str, Any]] = None):
        values = dict(values or {})
        unknown = set(values) - set(self.METADATA_FIELDS + self.SETTINGS_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown pool fields: {', '.join(sorted(unknown))}")
        self._values = values

    @classmethod
    def from_form(cls, form):
        nullable = getattr(form, 'NULLABLE_FIELDS', ())
        values = {}
        for name in form.supplied_fields():
            value = form[name].data
            values[name] = None if name in nullable and not value else value
        return cls(values)

    def supplied(self, name):
        return name in self._values

    def value(self, name):
        return self._values[name]

    def fields(self):
        return list(self._values)

    def touches_metadata(self):
        return any(name in self._values for name in self.METADATA_FIELDS)

    def __bool__(self):
        return bool(self._values)


def generate_invite_code():
    """Eight character upper-case invite code."""
    length = current_app.config['INVITE_CODE_LENGTH']
    return secrets.token_urlsafe(length)[:length].upper()


def create_pool(owner, name, game_name, home_team, away_team, game_time,
                square_price, max_squares_per_user, visibility='public',
                entry_fee_info=None, rules=None, invite_code=None):
    """
    Create an open pool and its 100 empty squares in one transaction.

    Returns (pool, invite_code). The plain invite code is only ever returned
    here; the pool stores its hash. Public pools get no code.
    """
    if visibility not in current_app.config['POOL_VISIBILITIES']:
        raise ValidationError(f'Invalid visibility: {visibility}')

    plain_code = None
    invite_code_hash = None
    if visibility == 'private':
        plain_code = (invite_code or generate_invite_code()).upper()
        invite_code_hash = generate_password_hash(plain_code)

    grid_size = current_app.config['GRID_SIZE']
    with atomic():
        pool = Pool(
            owner_id=owner.id,
            name=name,
            game_name=game_name,
            home_team=home_team,
            away_team=away_team,
            game_time=game_time,
            entry_fee_info=entry_fee_info or None,
            rules=rules or None,
            square_price=square_price,
            max_squares_per_user=max_squares_per_user,
            visibility=visibility,
            invite_code_hash=invite_code_hash,
            status='open',
        )
        db.session.add(pool)
        db.session.flush()

        db.session.add_all([
            Square(pool_id=pool.id, row=row, col=col)
            for row in range(grid_size)
            for col in range(grid_size)
        ])

    log_event(pool.id, owner.id, 'pool_created', {
        'pool_name': pool.name,
        'game_name': pool.game_name,
    })
    return pool, plain_code


def update_pool_settings(pool_id, user_id, changes: FieldChanges):
    """
    Apply an explicit set of field changes to a pool.

    Game metadata can only change while the pool is open; square price and
    the per-user cap can change in any status.
    """
    if not changes:
        raise ValidationError('No valid updates provided')

    with atomic():
        pool = lock_pool_row(pool_id)
        require_owner(pool, user_id, 'update pool')
        if changes.touches_metadata():
            require_status(pool, 'update pool details', 'open')

        diff = {}
        for field in changes.fields():
            old_value = getattr(pool, field)
            new_value = changes.value(field)
            if old_value != new_value:
                diff[field] = {'from': old_value, 'to': new_value}
                setattr(pool, field, new_value)

    if diff:
        log_event(pool_id, user_id, 'pool_updated', json.loads(json.dumps(diff, default=str)))
    return pool, diff


def delete_pool(pool_id, user_id):
    with atomic():
        pool = lock_pool_row(pool_id)
        require_owner(pool, user_id, 'delete pool')
        pool_name = pool.name
        db.session.delete(pool)

    audit_log_pool_action('pool_deleted', pool_id, f'Deleted pool: {pool_name}', actor_user_id=user_id)


def verify_invite_code(pool_id, code):
    """
    Check an invite code for a private pool. Codes compare case-insensitively.
    """
    pool = get_pool_or_404(pool_id)

    if not pool.is_private:
        raise ValidationError('Pool is public - no invite code needed')
    if not pool.invite_code_hash:
        raise ValidationError('Pool has no invite code')

    if not code or not check_password_hash(pool.invite_code_hash, code.strip().upper()):
        audit_log_security_event('INVALID_INVITE_CODE', f'Invalid invite code for pool {pool_id}')
        raise InvalidInviteCodeError()

    return pool


def can_view_pool(user_id, pool, joined_pool_ids=()):
    """
    Public pools are visible to everyone. Private pools are visible to their
    owner, to players holding squares in them, and to sessions that joined
    with the invite code.
    """
    if not pool.is_private:
        return True
    if pool.is_owned_by(user_id) or pool.id in joined_pool_ids:
        return True
    if user_id is None:
        return False
    return db.session.scalar(
        sa.select(sa.func.count()).select_from(Square).where(
            Square.pool_id == pool.id,
            Square.claimed_by_user_id == user_id
        )
    ) > 0


def get_public_pools(limit, offset=0):
    return db.session.scalars(
        sa.select(Pool)
        .where(Pool.visibility == 'public')
        .order_by(Pool.created_at.desc())
        .limit(limit)
        .offset(offset)
    ).all()


def get_pools_for_user(user_id):
    """Pools the user owns or holds at least one square in, newest first."""
    played = sa.select(Square.pool_id).where(Square.claimed_by_user_id == user_id)
    return db.session.scalars(
        sa.select(Pool)
        .where(sa.or_(Pool.owner_id == user_id, Pool.id.in_(played)))
        .order_by(Pool.created_at.desc())
    ).all()


def _store_axis(pool, x_digits, y_digits):
    """Insert or replace the pool's axis assignment."""
    if not (validate_digits(x_digits) and validate_digits(y_digits)):
        raise InvariantViolation("Generated axis digits are not permutations of 0-9")

    axis = db.session.get(AxisAssignment, pool.id, populate_existing=True)
    if axis is None:
        axis = AxisAssignment(pool_id=pool.id)
        db.session.add(axis)
    axis.x_digits_json = json.dumps(x_digits)
    axis.y_digits_json = json.dumps(y_digits)
    axis.randomized_at = utcnow()
    return axis


def _transition(pool_id, user_id, action, from_status, to_status, event_type):
    with atomic():
        pool = lock_pool_row(pool_id)
        require_owner(pool, user_id, action)
        require_status(pool, action, from_status)
        pool.status = to_status

    log_event(pool_id, user_id, event_type, {'pool_name': pool.name})
    return pool


def lock_pool(pool_id, user_id):
    return _transition(pool_id, user_id, 'lock pool', 'open', 'locked', 'pool_locked')


def unlock_pool(pool_id, user_id):
    return _transition(pool_id, user_id, 'unlock pool', 'locked', 'open', 'pool_unlocked')


def randomize_pool(pool_id, user_id):
    """
    Draw fresh digits for both axes and move the pool from locked to numbered.
    """
    x_digits, y_digits = generate_axis_digits()

    with atomic():
        pool = lock_pool_row(pool_id)
        require_owner(pool, user_id, 'randomize pool')
        require_status(pool, 'randomize pool', 'locked')
        axis = _store_axis(pool, x_digits, y_digits)
        pool.status = 'numbered'

    log_event(pool_id, user_id, 'pool_randomized', {
        'x_digits': x_digits,
        'y_digits': y_digits,
    })
    return pool, axis


def unrandomize_pool(pool_id, user_id):
    """
    Discard the axis assignment and return a numbered pool to locked.
    """
    with atomic():
        pool = lock_pool_row(pool_id)
        require_owner(pool, user_id, 'un-randomize pool')
        require_status(pool, 'un-randomize pool', 'numbered')
        db.session.execute(sa.delete(AxisAssignment).where(AxisAssignment.pool_id == pool_id))
        pool.status = 'locked'

    log_event(pool_id, user_id, 'pool_unrandomized', {'pool_name': pool.name})
    return pool


def _auto_lock_one(pool_id, now):
    """
    Lock (if open) and randomize one pool whose game time has passed.

    Returns the list of actions taken; an empty list means the pool had moved
    on before the sweep reached it.
    """
    actions = []
    x_digits, y_digits = generate_axis_digits()

    with atomic():
        pool = lock_pool_row(pool_id)
        if pool.status not in AUTO_LOCK_STATUSES or pool.game_time > now:
            return actions

        if pool.status == 'open':
            pool.status = 'locked'
            actions.append('locked')

        _store_axis(pool, x_digits, y_digits)
        pool.status = 'numbered'
        actions.append('randomized')

    if 'locked' in actions:
        log_event(pool_id, None, 'pool_locked', {
            'auto_locked': True,
            'reason': 'Game time reached',
        })
    log_event(pool_id, None, 'pool_randomized', {
        'auto_randomized': True,
        'reason': 'Game time reached',
        'x_digits': x_digits,
        'y_digits': y_digits,
    })
    return actions


def auto_lock_pools(now: Optional[datetime] = None):
    """
    Lock and randomize every open or locked pool whose game time has passed.
    This should be called periodically (e.g., via a scheduled task).

    Each pool is processed in its own transaction; a failure is rolled back,
    logged and reported for that pool only. Returns one outcome per candidate.
    """
    now = now or utcnow()
    pool_ids = db.session.scalars(
        sa.select(Pool.id).where(
            Pool.status.in_(AUTO_LOCK_STATUSES),
            Pool.game_time <= now
        ).order_by(Pool.game_time)
    ).all()
    db.session.commit()

    results = []
    for pool_id in pool_ids:
        result = {'pool_id': pool_id, 'actions': [], 'success': True, 'error': None}
        try:
            actions = _auto_lock_one(pool_id, now)
            result['actions'] = actions or ['skipped']
            current_app.logger.info(f"Auto-lock pool {pool_id}: {', '.join(result['actions'])}")
        except Exception as e:
            db.session.rollback()
            result['success'] = False
            result['error'] = str(e)
            current_app.logger.error(f"Error auto-locking pool {pool_id}: {str(e)}")
        results.append(result)

    failed = sum(1 for r in results if not r['success'])
    if results:
        audit_log_system_event('AUTO_LOCK', f'Processed {len(results)} pools, {failed} failed')
    return results
