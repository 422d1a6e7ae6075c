"""
Append-only event log for pools.

log_event() is called after the business transaction has committed. It writes
in its own commit and never raises: a failure to record an event must not undo
or fail the operation that triggered it.
"""

import json
from typing import Optional, Dict, Any

import sqlalchemy as sa
from flask import current_app

from app import db
from app.audit import audit_log_pool_action
from app.models import PoolEvent

EVENT_TYPES = (
    'pool_created',
    'pool_updated',
    'pool_deleted',
    'pool_locked',
    'pool_unlocked',
    'pool_randomized',
    'pool_unrandomized',
    'squares_claimed',
    'square_unclaimed',
    'board_cleared',
    'score_updated',
    'score_removed',
    'pool_completed',
)


def log_event(pool_id: str, actor_user_id: Optional[int], event_type: str,
              payload: Optional[Dict[str, Any]] = None) -> Optional[PoolEvent]:
    """
    Record an event for a pool.

    Returns the stored PoolEvent, or None if it could not be written.
    """
    payload = payload or {}
    try:
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type}")

        event = PoolEvent(
            pool_id=pool_id,
            actor_user_id=actor_user_id,
            type=event_type,
            payload_json=json.dumps(payload, default=str),
        )
        db.session.add(event)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to log event {event_type} for pool {pool_id} (non-fatal): {str(e)}")
        return None

    audit_log_pool_action(event_type, pool_id, json.dumps(payload, default=str), actor_user_id=actor_user_id)
    return event


def get_pool_events(pool_id: str, limit: Optional[int] = None) -> list[PoolEvent]:
    """
    Events for one pool, newest first. Events stamped in the same instant
    come back in reverse insertion order.
    """
    if limit is None:
        limit = current_app.config['EVENT_LOG_LIMIT']
    return db.session.scalars(
        sa.select(PoolEvent)
        .where(PoolEvent.pool_id == pool_id)
        .order_by(PoolEvent.created_at.desc(), PoolEvent.id.desc())
        .limit(limit)
    ).all()


def get_events_by_type(event_type: str, limit: Optional[int] = None) -> list[PoolEvent]:
    if limit is None:
        limit = current_app.config['EVENT_LOG_LIMIT']
    return db.session.scalars(
        sa.select(PoolEvent)
        .where(PoolEvent.type == event_type)
        .order_by(PoolEvent.created_at.desc(), PoolEvent.id.desc())
        .limit(limit)
    ).all()
