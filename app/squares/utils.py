"""
Square claim ledger.

Claims and unclaims run as one transaction that holds the pool row lock, so
the status check, the per-user cap check and the writes cannot interleave
with another request on the same pool. The stamp itself is a conditional
UPDATE that only matches an unclaimed cell, so a lost race still fails
instead of overwriting another player's claim.
"""

import sqlalchemy as sa
from flask import current_app

from app import db
from app.errors import (
    ClaimLimitError, InvariantViolation, NotSquareOwnerError,
    SquareAlreadyClaimedError, SquareNotClaimedError, ValidationError
)
from app.event_log import log_event
from app.models import AxisAssignment, Square, utcnow
from app.utils import atomic, lock_pool_row, parse_int, require_owner, require_status

CLEARED_CLAIM = {
    'claimed_by_user_id': None,
    'claimed_display_name': None,
    'claimed_email': None,
    'claimed_at': None,
}


def parse_cell(row, col):
    last = current_app.config['GRID_SIZE'] - 1
    return (
        parse_int(row, 'row', minimum=0, maximum=last),
        parse_int(col, 'col', minimum=0, maximum=last),
    )


def parse_cells(cells) -> list[tuple[int, int]]:
    """
    Validate a claim request's cell list.

    Accepts [{"row": r, "col": c}, ...] or [[r, c], ...]. The list must be
    non-empty, within the batch limit and free of duplicates.
    """
    if not isinstance(cells, list) or not cells:
        raise ValidationError('Must claim at least one square')

    batch_limit = current_app.config['MAX_CLAIM_BATCH']
    if len(cells) > batch_limit:
        raise ValidationError(f'Cannot claim more than {batch_limit} squares at once')

    parsed = []
    for cell in cells:
        if isinstance(cell, dict) and 'row' in cell and 'col' in cell:
            parsed.append(parse_cell(cell['row'], cell['col']))
        elif isinstance(cell, (list, tuple)) and len(cell) == 2:
            parsed.append(parse_cell(cell[0], cell[1]))
        else:
            raise ValidationError('Each square must have a row and a col')

    if len(set(parsed)) != len(parsed):
        raise ValidationError('The same square was requested more than once')

    return parsed


def get_pool_squares(pool_id):
    return db.session.scalars(
        sa.select(Square)
        .where(Square.pool_id == pool_id)
        .order_by(Square.row, Square.col)
    ).all()


def get_square(pool_id, row, col):
    return db.session.scalar(
        sa.select(Square)
        .where(Square.pool_id == pool_id, Square.row == row, Square.col == col)
        .execution_options(populate_existing=True)
    )


def get_user_square_count(pool_id, user_id):
    """Number of squares the user currently holds in the pool, straight from the database."""
    return db.session.scalar(
        sa.select(sa.func.count()).select_from(Square).where(
            Square.pool_id == pool_id,
            Square.claimed_by_user_id == user_id
        )
    )


def get_claimed_square_count(pool_id):
    return db.session.scalar(
        sa.select(sa.func.count()).select_from(Square).where(
            Square.pool_id == pool_id,
            Square.claimed_by_user_id.is_not(None)
        )
    )


def claim_squares(pool_id, user_id, display_name, email, cells):
    """
    Claim every requested square for the user, or none of them.

    Raises WrongStateError unless the pool is open, SquareAlreadyClaimedError
    naming the first taken square, or ClaimLimitError when the user's
    holdings plus this request would pass the pool's cap.
    """
    cells = parse_cells(cells)

    with atomic():
        pool = lock_pool_row(pool_id)
        require_status(pool, 'claim squares', 'open')

        for row, col in cells:
            square = get_square(pool_id, row, col)
            if square is None:
                raise InvariantViolation(f"Pool {pool_id} has no square ({row}, {col})")
            if square.is_claimed:
                raise SquareAlreadyClaimedError(row, col)

        current = get_user_square_count(pool_id, user_id)
        if current + len(cells) > pool.max_squares_per_user:
            raise ClaimLimitError(pool.max_squares_per_user, current, len(cells))

        claimed_at = utcnow()
        for row, col in cells:
            result = db.session.execute(
                sa.update(Square)
                .where(
                    Square.pool_id == pool_id,
                    Square.row == row,
                    Square.col == col,
                    Square.claimed_by_user_id.is_(None)
                )
                .values(
                    claimed_by_user_id=user_id,
                    claimed_display_name=display_name,
                    claimed_email=email,
                    claimed_at=claimed_at
                )
            )
            if result.rowcount != 1:
                raise SquareAlreadyClaimedError(row, col)

    log_event(pool_id, user_id, 'squares_claimed', {
        'count': len(cells),
        'squares': [{'row': row, 'col': col} for row, col in cells],
    })
    return cells


def unclaim_square(pool_id, row, col, user_id):
    """Release one of the user's own squares while the pool is open."""
    row, col = parse_cell(row, col)

    with atomic():
        pool = lock_pool_row(pool_id)
        require_status(pool, 'unclaim squares', 'open')

        square = get_square(pool_id, row, col)
        if square is None:
            raise InvariantViolation(f"Pool {pool_id} has no square ({row}, {col})")
        if not square.is_claimed:
            raise SquareNotClaimedError()
        if square.claimed_by_user_id != user_id:
            raise NotSquareOwnerError()

        square.clear_claim()

    log_event(pool_id, user_id, 'square_unclaimed', {'row': row, 'col': col})


def clear_board(pool_id, user_id):
    """
    Owner reset: release every square in the pool, whatever its status.

    Returns the number of squares that had been claimed.
    """
    with atomic():
        pool = lock_pool_row(pool_id)
        require_owner(pool, user_id, 'clear board of')

        cleared = get_claimed_square_count(pool_id)
        db.session.execute(
            sa.update(Square)
            .where(Square.pool_id == pool_id)
            .values(**CLEARED_CLAIM)
        )

    log_event(pool_id, user_id, 'board_cleared', {'cleared': cleared})
    return cleared


def get_board(pool):
    """
    Snapshot of a pool's board: the squares row by row, the axis digits once
    numbered, and claim counts.
    """
    squares = get_pool_squares(pool.id)
    axis = db.session.get(AxisAssignment, pool.id)
    return {
        'pool': pool.to_dict(),
        'squares': [square.to_dict() for square in squares],
        'axis': axis.to_dict() if axis else None,
        'claimed_count': sum(1 for square in squares if square.is_claimed),
        'total_squares': len(squares),
    }
