"""
Unit tests for the scheduled auto-lock sweep.
"""
import pytest
import sqlalchemy as sa
from datetime import timedelta
from unittest.mock import patch

from app import db
from app.game.randomize import validate_digits
from app.models import AxisAssignment, PoolEvent, utcnow
from app.pools.utils import _auto_lock_one, auto_lock_pools
from app.utils import lock_pool_row
from tests.fixtures.factories import PoolFactory


def past(hours=1):
    return utcnow() - timedelta(hours=hours)


def events_oldest_first(pool_id):
    return db.session.scalars(
        sa.select(PoolEvent)
        .where(PoolEvent.pool_id == pool_id)
        .order_by(PoolEvent.created_at)
    ).all()


@pytest.mark.unit
class TestAutoLock:

    def test_open_pool_past_game_time(self, app, db_session, owner):
        pool = PoolFactory.create(owner=owner, game_time=past())

        results = auto_lock_pools()

        assert results == [{'pool_id': pool.id, 'actions': ['locked', 'randomized'],
                            'success': True, 'error': None}]
        assert lock_pool_row(pool.id).status == 'numbered'
        axis = db_session.get(AxisAssignment, pool.id)
        assert validate_digits(axis.x_digits)
        assert validate_digits(axis.y_digits)

        events = events_oldest_first(pool.id)
        assert [e.type for e in events] == ['pool_locked', 'pool_randomized']
        assert events[0].actor_user_id is None
        assert events[0].payload['auto_locked'] is True
        assert events[1].payload['x_digits'] == axis.x_digits

    def test_locked_pool_is_only_randomized(self, app, db_session, owner):
        pool = PoolFactory.create(owner=owner, game_time=past(), status='locked')

        results = auto_lock_pools()

        assert results[0]['actions'] == ['randomized']
        assert lock_pool_row(pool.id).status == 'numbered'

    def test_ignores_future_and_finished_pools(self, app, db_session, owner):
        upcoming = PoolFactory.create(owner=owner)
        numbered = PoolFactory.create(owner=owner, game_time=past(), status='numbered', axis=True)
        completed = PoolFactory.create(owner=owner, game_time=past(), status='completed', axis=True)

        assert auto_lock_pools() == []
        assert lock_pool_row(upcoming.id).status == 'open'
        assert lock_pool_row(numbered.id).status == 'numbered'
        assert lock_pool_row(completed.id).status == 'completed'

    @pytest.mark.parametrize('status,axis,hours_ago', [
        ('numbered', True, 1),
        ('completed', True, 1),
        ('open', None, -24),
        ('locked', None, -24),
    ])
    def test_pool_moved_on_is_left_alone(self, app, db_session, owner, status, axis, hours_ago):
        pool = PoolFactory.create(owner=owner, status=status, axis=axis, game_time=past(hours_ago))
        pool_id = pool.id

        assert _auto_lock_one(pool_id, utcnow()) == []

        db.session.expire_all()
        assert lock_pool_row(pool_id).status == status
        stored = db.session.get(AxisAssignment, pool_id)
        if axis:
            assert stored.x_digits == list(range(10))
            assert stored.y_digits == list(range(10))
        else:
            assert stored is None
        assert events_oldest_first(pool_id) == []

    def test_failure_is_isolated(self, app, db_session, owner):
        first = PoolFactory.create(owner=owner, game_time=past(3))
        second = PoolFactory.create(owner=owner, game_time=past(1))

        with patch('app.pools.utils.generate_axis_digits',
                   side_effect=[RuntimeError('entropy unavailable'), ([0] * 10, [0] * 10),
                                (list(range(10)), list(range(10)))]):
            results = auto_lock_pools()

        assert [r['success'] for r in results] == [False, False]
        assert results[0]['error'] == 'entropy unavailable'
        assert lock_pool_row(first.id).status == 'open'
        assert lock_pool_row(second.id).status == 'open'

    def test_one_failure_does_not_stop_the_sweep(self, app, db_session, owner):
        first = PoolFactory.create(owner=owner, game_time=past(3))
        second = PoolFactory.create(owner=owner, game_time=past(1))

        with patch('app.pools.utils.generate_axis_digits',
                   side_effect=[RuntimeError('entropy unavailable'),
                                (list(range(10)), list(range(10)))]):
            results = auto_lock_pools()

        assert [r['pool_id'] for r in results] == [first.id, second.id]
        assert [r['success'] for r in results] == [False, True]
        assert lock_pool_row(first.id).status == 'open'
        assert lock_pool_row(second.id).status == 'numbered'
