"""
Score entry and the score-driven status transitions:
numbered -> completed when a FINAL score is written, and back when it is
removed.
"""

from dataclasses import dataclass

import sqlalchemy as sa
from flask import current_app

from app import db
from app.errors import InvariantViolation, ScoreNotFoundError, ValidationError
from app.event_log import log_event
from app.game.winners import BUCKET_ORDER, resolve_all, sort_winners
from app.models import AxisAssignment, Score, utcnow
from app.squares.utils import get_pool_squares
from app.utils import atomic, lock_pool_row, parse_int, require_owner, require_status

SCORING_STATUSES = ('numbered', 'completed')


@dataclass(frozen=True)
class ScoreEntry:
    bucket: str
    home_score: int
    away_score: int


def parse_bucket(bucket):
    buckets = current_app.config['SCORE_BUCKETS']
    if not isinstance(bucket, str) or bucket.strip().upper() not in buckets:
        raise ValidationError(f"bucket must be one of {', '.join(buckets)}")
    return bucket.strip().upper()


def parse_score_entries(entries) -> list[ScoreEntry]:
    """Validate a list of {bucket, home_score, away_score} objects."""
    if not isinstance(entries, list) or not entries:
        raise ValidationError('scores must be a non-empty list')

    maximum = current_app.config['MAX_SCORE_VALUE']
    parsed = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise ValidationError('Each score must be an object')
        parsed.append(ScoreEntry(
            bucket=parse_bucket(entry.get('bucket')),
            home_score=parse_int(entry.get('home_score'), 'home_score', minimum=0, maximum=maximum),
            away_score=parse_int(entry.get('away_score'), 'away_score', minimum=0, maximum=maximum),
        ))

    buckets = [entry.bucket for entry in parsed]
    if len(set(buckets)) != len(buckets):
        raise ValidationError('Each bucket may appear only once')

    return parsed


def get_pool_scores(pool_id):
    """Scores in bucket order Q1, Q2, Q3, Q4, FINAL."""
    scores = db.session.scalars(
        sa.select(Score).where(Score.pool_id == pool_id)
    ).all()
    return sorted(scores, key=lambda s: BUCKET_ORDER[s.bucket])


def _get_score(pool_id, bucket):
    return db.session.get(Score, (pool_id, bucket), populate_existing=True)


def update_scores(pool_id, user_id, entries):
    """
    Insert or replace the given buckets. Buckets not named are left as they are.

    Returns (scores, completed) where completed says whether this call moved
    the pool to completed.
    """
    entries = parse_score_entries(entries)
    final_bucket = current_app.config['FINAL_BUCKET']

    with atomic():
        pool = lock_pool_row(pool_id)
        require_owner(pool, user_id, 'enter scores for')
        require_status(pool, 'enter scores', *SCORING_STATUSES)

        now = utcnow()
        for entry in entries:
            score = _get_score(pool_id, entry.bucket)
            if score is None:
                score = Score(pool_id=pool_id, bucket=entry.bucket)
                db.session.add(score)
            score.home_score = entry.home_score
            score.away_score = entry.away_score
            score.updated_at = now

        completed = False
        if any(entry.bucket == final_bucket for entry in entries) and pool.status == 'numbered':
            pool.status = 'completed'
            completed = True

    log_event(pool_id, user_id, 'score_updated', {
        'scores': [
            {'bucket': e.bucket, 'home_score': e.home_score, 'away_score': e.away_score}
            for e in entries
        ],
    })
    if completed:
        log_event(pool_id, user_id, 'pool_completed', {'reason': 'Final score entered'})

    return get_pool_scores(pool_id), completed


def remove_score(pool_id, user_id, bucket):
    """
    Delete one bucket's score. Removing the FINAL score from a completed pool
    returns it to numbered.

    Returns True when the pool's status was reverted.
    """
    bucket = parse_bucket(bucket)
    final_bucket = current_app.config['FINAL_BUCKET']

    with atomic():
        pool = lock_pool_row(pool_id)
        require_owner(pool, user_id, 'remove scores from')
        require_status(pool, 'remove scores', *SCORING_STATUSES)

        score = _get_score(pool_id, bucket)
        if score is None:
            raise ScoreNotFoundError(f'No {bucket} score entered')
        db.session.delete(score)
        db.session.flush()

        reverted = False
        if bucket == final_bucket and pool.status == 'completed':
            remaining_final = db.session.scalar(
                sa.select(sa.func.count()).select_from(Score).where(
                    Score.pool_id == pool_id,
                    Score.bucket == final_bucket
                )
            )
            if remaining_final == 0:
                pool.status = 'numbered'
                reverted = True

    log_event(pool_id, user_id, 'score_removed', {
        'bucket': bucket,
        'status_reverted': reverted,
    })
    return reverted


def get_pool_winners(pool):
    """
    Winners for every score entered on a numbered or completed pool, in
    bucket order.
    """
    require_status(pool, 'view winners', *SCORING_STATUSES)

    axis = db.session.get(AxisAssignment, pool.id)
    if axis is None:
        raise InvariantViolation(f"Pool {pool.id} is {pool.status} but has no axis assignment")

    winners = resolve_all(
        get_pool_scores(pool.id),
        col_digits=axis.x_digits,
        row_digits=axis.y_digits,
        claims=get_pool_squares(pool.id),
    )
    return sort_winners(winners)
