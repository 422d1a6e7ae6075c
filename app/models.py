# Standard library imports
import json
import secrets
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

# Third-party imports
import sqlalchemy as sa
import sqlalchemy.orm as so
from flask_login import UserMixin

# Local application imports
from app import db, login


def utcnow():
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def generate_id():
    """URL-safe random identifier for pools."""
    return secrets.token_urlsafe(16)


class User(UserMixin, db.Model):
    __tablename__ = 'users'

    id: so.Mapped[int] = so.mapped_column(primary_key=True)
    email: so.Mapped[str] = so.mapped_column(sa.String(120), index=True, unique=True)
    name: so.Mapped[str] = so.mapped_column(sa.String(100))
    password_hash: so.Mapped[Optional[str]] = so.mapped_column(sa.String(256))
    created_at: so.Mapped[datetime] = so.mapped_column(sa.DateTime, default=utcnow, nullable=False)

    owned_pools: so.Mapped[list['Pool']] = so.relationship('Pool', back_populates='owner')

    def __repr__(self):
        return '<User {}>'.format(self.email)


@login.user_loader
def load_user(id):
    return db.session.get(User, int(id))


class Pool(db.Model):
    """
    A 10x10 squares pool for one game.

    The status column moves open -> locked -> numbered -> completed; the
    transitions themselves live in app.pools.utils and app.scores.utils.
    """
    __tablename__ = 'pools'
    __table_args__ = (
        sa.CheckConstraint("status IN ('open', 'locked', 'numbered', 'completed')", name='ck_pools_status'),
        sa.CheckConstraint("visibility IN ('public', 'private')", name='ck_pools_visibility'),
        sa.CheckConstraint('square_price >= 0', name='ck_pools_square_price'),
        sa.CheckConstraint('max_squares_per_user BETWEEN 1 AND 100', name='ck_pools_max_squares'),
    )

    id: so.Mapped[str] = so.mapped_column(sa.String(32), primary_key=True, default=generate_id)
    owner_id: so.Mapped[int] = so.mapped_column(sa.Integer, sa.ForeignKey('users.id'), index=True, nullable=False)
    name: so.Mapped[str] = so.mapped_column(sa.String(100), nullable=False)
    game_name: so.Mapped[str] = so.mapped_column(sa.String(100), nullable=False)
    home_team: so.Mapped[str] = so.mapped_column(sa.String(50), nullable=False)
    away_team: so.Mapped[str] = so.mapped_column(sa.String(50), nullable=False)
    game_time: so.Mapped[datetime] = so.mapped_column(sa.DateTime, index=True, nullable=False)
    entry_fee_info: so.Mapped[Optional[str]] = so.mapped_column(sa.String(500), nullable=True)
    rules: so.Mapped[Optional[str]] = so.mapped_column(sa.Text, nullable=True)
    square_price: so.Mapped[Decimal] = so.mapped_column(sa.Numeric(10, 2), nullable=False, default=0)
    max_squares_per_user: so.Mapped[int] = so.mapped_column(sa.Integer, nullable=False, default=10)
    visibility: so.Mapped[str] = so.mapped_column(sa.String(10), nullable=False, default='public')
    invite_code_hash: so.Mapped[Optional[str]] = so.mapped_column(sa.String(256), nullable=True)
    status: so.Mapped[str] = so.mapped_column(sa.String(16), index=True, nullable=False, default='open')
    created_at: so.Mapped[datetime] = so.mapped_column(sa.DateTime, default=utcnow, nullable=False)

    # Relationships
    owner: so.Mapped['User'] = so.relationship('User', back_populates='owned_pools')
    squares: so.Mapped[list['Square']] = so.relationship(
        'Square', back_populates='pool', cascade='all, delete-orphan'
    )
    axis: so.Mapped[Optional['AxisAssignment']] = so.relationship(
        'AxisAssignment', back_populates='pool', uselist=False, cascade='all, delete-orphan'
    )
    scores: so.Mapped[list['Score']] = so.relationship(
        'Score', back_populates='pool', cascade='all, delete-orphan'
    )
    events: so.Mapped[list['PoolEvent']] = so.relationship(
        'PoolEvent', back_populates='pool', cascade='all, delete-orphan'
    )

    def __repr__(self):
        return f"<Pool id={self.id}, name='{self.name}', status={self.status}>"

    @property
    def is_private(self):
        return self.visibility == 'private'

    def is_owned_by(self, user_id):
        return user_id is not None and self.owner_id == user_id

    def to_dict(self):
        return {
            'id': self.id,
            'owner_id': self.owner_id,
            'owner_name': self.owner.name if self.owner else None,
            'name': self.name,
            'game_name': self.game_name,
            'home_team': self.home_team,
            'away_team': self.away_team,
            'game_time': self.game_time.isoformat(),
            'entry_fee_info': self.entry_fee_info,
            'rules': self.rules,
            'square_price': str(self.square_price),
            'max_squares_per_user': self.max_squares_per_user,
            'visibility': self.visibility,
            'status': self.status,
            'created_at': self.created_at.isoformat(),
        }


class Square(db.Model):
    """
    One cell of a pool's board.

    The four claimed_* columns are set and cleared together, by the
    conditional claim UPDATE in app.squares.utils and by clear_claim().
    """
    __tablename__ = 'squares'
    __table_args__ = (
        sa.CheckConstraint('row BETWEEN 0 AND 9', name='ck_squares_row'),
        sa.CheckConstraint('col BETWEEN 0 AND 9', name='ck_squares_col'),
        sa.Index('ix_squares_pool_claimant', 'pool_id', 'claimed_by_user_id'),
    )

    pool_id: so.Mapped[str] = so.mapped_column(sa.String(32), sa.ForeignKey('pools.id', ondelete='CASCADE'), primary_key=True)
    row: so.Mapped[int] = so.mapped_column(sa.Integer, primary_key=True, autoincrement=False)
    col: so.Mapped[int] = so.mapped_column(sa.Integer, primary_key=True, autoincrement=False)
    claimed_by_user_id: so.Mapped[Optional[int]] = so.mapped_column(sa.Integer, sa.ForeignKey('users.id'), nullable=True)
    claimed_display_name: so.Mapped[Optional[str]] = so.mapped_column(sa.String(100), nullable=True)
    claimed_email: so.Mapped[Optional[str]] = so.mapped_column(sa.String(120), nullable=True)
    claimed_at: so.Mapped[Optional[datetime]] = so.mapped_column(sa.DateTime, nullable=True)

    pool: so.Mapped['Pool'] = so.relationship('Pool', back_populates='squares')

    def __repr__(self):
        return f"<Square pool={self.pool_id} ({self.row}, {self.col}) claimed_by={self.claimed_by_user_id}>"

    @property
    def is_claimed(self):
        return self.claimed_by_user_id is not None

    def clear_claim(self):
        self.claimed_by_user_id = None
        self.claimed_display_name = None
        self.claimed_email = None
        self.claimed_at = None

    def to_dict(self):
        return {
            'row': self.row,
            'col': self.col,
            'claimed_by_user_id': self.claimed_by_user_id,
            'claimed_display_name': self.claimed_display_name,
            'claimed_at': self.claimed_at.isoformat() if self.claimed_at else None,
        }


class AxisAssignment(db.Model):
    """Randomized digits for a pool: x is the column (away) axis, y the row (home) axis."""
    __tablename__ = 'axis_assignments'

    pool_id: so.Mapped[str] = so.mapped_column(sa.String(32), sa.ForeignKey('pools.id', ondelete='CASCADE'), primary_key=True)
    x_digits_json: so.Mapped[str] = so.mapped_column(sa.String(64), nullable=False)
    y_digits_json: so.Mapped[str] = so.mapped_column(sa.String(64), nullable=False)
    randomized_at: so.Mapped[datetime] = so.mapped_column(sa.DateTime, default=utcnow, nullable=False)

    pool: so.Mapped['Pool'] = so.relationship('Pool', back_populates='axis')

    def __repr__(self):
        return f"<AxisAssignment pool={self.pool_id} x={self.x_digits_json} y={self.y_digits_json}>"

    @property
    def x_digits(self):
        return json.loads(self.x_digits_json)

    @property
    def y_digits(self):
        return json.loads(self.y_digits_json)

    def to_dict(self):
        return {
            'pool_id': self.pool_id,
            'x_digits': self.x_digits,
            'y_digits': self.y_digits,
            'randomized_at': self.randomized_at.isoformat(),
        }


class Score(db.Model):
    __tablename__ = 'scores'
    __table_args__ = (
        sa.CheckConstraint("bucket IN ('Q1', 'Q2', 'Q3', 'Q4', 'FINAL')", name='ck_scores_bucket'),
        sa.CheckConstraint('home_score >= 0', name='ck_scores_home'),
        sa.CheckConstraint('away_score >= 0', name='ck_scores_away'),
    )

    pool_id: so.Mapped[str] = so.mapped_column(sa.String(32), sa.ForeignKey('pools.id', ondelete='CASCADE'), primary_key=True)
    bucket: so.Mapped[str] = so.mapped_column(sa.String(8), primary_key=True)
    home_score: so.Mapped[int] = so.mapped_column(sa.Integer, nullable=False)
    away_score: so.Mapped[int] = so.mapped_column(sa.Integer, nullable=False)
    updated_at: so.Mapped[datetime] = so.mapped_column(sa.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    pool: so.Mapped['Pool'] = so.relationship('Pool', back_populates='scores')

    def __repr__(self):
        return f"<Score pool={self.pool_id} {self.bucket} {self.home_score}-{self.away_score}>"

    def to_dict(self):
        return {
            'bucket': self.bucket,
            'home_score': self.home_score,
            'away_score': self.away_score,
            'updated_at': self.updated_at.isoformat(),
        }


class PoolEvent(db.Model):
    """Append-only record of a state-changing action on a pool."""
    __tablename__ = 'pool_events'

    id: so.Mapped[int] = so.mapped_column(primary_key=True)
    pool_id: so.Mapped[str] = so.mapped_column(sa.String(32), sa.ForeignKey('pools.id', ondelete='CASCADE'), index=True, nullable=False)
    actor_user_id: so.Mapped[Optional[int]] = so.mapped_column(sa.Integer, sa.ForeignKey('users.id'), nullable=True)
    type: so.Mapped[str] = so.mapped_column(sa.String(32), index=True, nullable=False)
    payload_json: so.Mapped[str] = so.mapped_column(sa.Text, nullable=False, default='{}')
    created_at: so.Mapped[datetime] = so.mapped_column(sa.DateTime, default=utcnow, index=True, nullable=False)

    pool: so.Mapped['Pool'] = so.relationship('Pool', back_populates='events')

    def __repr__(self):
        return f"<PoolEvent id={self.id}, pool={self.pool_id}, type='{self.type}'>"

    @property
    def payload(self):
        return json.loads(self.payload_json) if self.payload_json else {}

    def to_dict(self):
        return {
            'id': self.id,
            'pool_id': self.pool_id,
            'actor_user_id': self.actor_user_id,
            'type': self.type,
            'payload': self.payload,
            'created_at': self.created_at.isoformat(),
        }
