"""
Factory classes for creating test data using Factory Boy.
"""
import json
import factory
from factory.alchemy import SQLAlchemyModelFactory
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from app import db
from app.models import User, Pool, Square, AxisAssignment, Score, PoolEvent


def future(days=7):
    return datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0) + timedelta(days=days)


class UserFactory(SQLAlchemyModelFactory):
    """Factory for creating User instances."""

    class Meta:
        model = User
        sqlalchemy_session = db.session
        sqlalchemy_session_persistence = 'commit'

    name = factory.Faker('name')
    email = factory.Sequence(lambda n: f'player{n}@example.com')


class PoolFactory(SQLAlchemyModelFactory):
    """
    Factory for creating Pool instances with their 100 empty squares.

    Pass status='numbered' (or 'completed') together with axis=True to get an
    axis assignment as well.
    """

    class Meta:
        model = Pool
        sqlalchemy_session = db.session
        sqlalchemy_session_persistence = 'commit'

    owner = factory.SubFactory(UserFactory)
    name = factory.Sequence(lambda n: f'Test Pool {n}')
    game_name = 'Championship Game'
    home_team = 'Home Hawks'
    away_team = 'Away Eagles'
    game_time = factory.LazyFunction(future)
    square_price = Decimal('5.00')
    max_squares_per_user = 10
    visibility = 'public'
    status = 'open'

    @factory.post_generation
    def squares(obj, create, extracted, **kwargs):
        """Create the full board."""
        if not create:
            return
        db.session.add_all([
            Square(pool_id=obj.id, row=row, col=col)
            for row in range(10)
            for col in range(10)
        ])
        db.session.commit()

    @factory.post_generation
    def axis(obj, create, extracted, **kwargs):
        """Store an axis assignment; extracted may be True or an (x, y) pair."""
        if not create or not extracted:
            return
        if extracted is True:
            x_digits, y_digits = list(range(10)), list(range(10))
        else:
            x_digits, y_digits = extracted
        db.session.add(AxisAssignment(
            pool_id=obj.id,
            x_digits_json=json.dumps(list(x_digits)),
            y_digits_json=json.dumps(list(y_digits)),
        ))
        db.session.commit()


class ScoreFactory(SQLAlchemyModelFactory):
    """Factory for creating Score instances."""

    class Meta:
        model = Score
        sqlalchemy_session = db.session
        sqlalchemy_session_persistence = 'commit'

    pool = factory.SubFactory(PoolFactory, status='numbered', axis=True)
    bucket = 'Q1'
    home_score = 7
    away_score = 3


class PoolEventFactory(SQLAlchemyModelFactory):
    """Factory for creating PoolEvent instances."""

    class Meta:
        model = PoolEvent
        sqlalchemy_session = db.session
        sqlalchemy_session_persistence = 'commit'

    pool = factory.SubFactory(PoolFactory)
    type = 'pool_created'
    payload_json = '{}'
