"""
Unit tests for the square claim ledger.
"""
import pytest
import sqlalchemy as sa
from unittest.mock import patch

from app import db
from app.errors import (
    ClaimLimitError, NotPoolOwnerError, NotSquareOwnerError, PoolNotFoundError,
    SquareAlreadyClaimedError, SquareNotClaimedError, ValidationError, WrongStateError
)
from app.models import Square, PoolEvent
from app.squares.utils import (
    claim_squares, clear_board, get_board, get_claimed_square_count, get_square,
    get_user_square_count, parse_cells, unclaim_square
)
from tests.fixtures.factories import PoolFactory


def claim(pool, user, cells):
    return claim_squares(pool.id, user.id, user.name, user.email, cells)


def claimed_cells(pool_id):
    squares = db.session.scalars(
        sa.select(Square)
        .where(Square.pool_id == pool_id, Square.claimed_by_user_id.is_not(None))
        .execution_options(populate_existing=True)
    )
    return {(s.row, s.col): s.claimed_by_user_id for s in squares}


@pytest.mark.unit
class TestParseCells:

    def test_dicts_and_pairs(self, app, db_session):
        assert parse_cells([{'row': 1, 'col': 2}, [3, 4]]) == [(1, 2), (3, 4)]

    def test_numeric_strings_accepted(self, app, db_session):
        assert parse_cells([{'row': '9', 'col': '0'}]) == [(9, 0)]

    @pytest.mark.parametrize('cells', [
        None,
        [],
        [{'row': 10, 'col': 0}],
        [{'row': -1, 'col': 0}],
        [{'row': 1.5, 'col': 0}],
        [{'row': True, 'col': 0}],
        [{'row': 1}],
        [[1, 2, 3]],
        [{'row': 1, 'col': 1}, {'row': 1, 'col': 1}],
    ])
    def test_rejects_bad_input(self, app, db_session, cells):
        with pytest.raises(ValidationError):
            parse_cells(cells)

    def test_batch_limit(self, app, db_session):
        cells = [{'row': i // 10, 'col': i % 10} for i in range(app.config['MAX_CLAIM_BATCH'] + 1)]
        with pytest.raises(ValidationError):
            parse_cells(cells)


@pytest.mark.unit
class TestClaimSquares:

    def test_claim_stamps_squares(self, app, db_session, test_pool, player):
        claimed = claim(test_pool, player, [{'row': 0, 'col': 0}, {'row': 1, 'col': 1}])

        assert claimed == [(0, 0), (1, 1)]
        square = get_square(test_pool.id, 1, 1)
        assert square.claimed_by_user_id == player.id
        assert square.claimed_display_name == player.name
        assert square.claimed_email == player.email
        assert square.claimed_at is not None
        assert get_user_square_count(test_pool.id, player.id) == 2

    def test_claim_logs_event(self, app, db_session, test_pool, player):
        claim(test_pool, player, [[2, 3]])

        event = db_session.scalar(sa.select(PoolEvent).where(PoolEvent.type == 'squares_claimed'))
        assert event.actor_user_id == player.id
        assert event.payload == {'count': 1, 'squares': [{'row': 2, 'col': 3}]}

    def test_conflict_leaves_board_unchanged(self, app, db_session, test_pool, player, other_player):
        claim(test_pool, player, [[4, 4]])

        with pytest.raises(SquareAlreadyClaimedError) as exc_info:
            claim(test_pool, other_player, [[5, 5], [4, 4]])

        assert (exc_info.value.row, exc_info.value.col) == (4, 4)
        assert claimed_cells(test_pool.id) == {(4, 4): player.id}

    def test_square_taken_after_check_fails_whole_claim(self, app, db_session, test_pool, player, other_player):
        pool_id, rival_id = test_pool.id, other_player.id

        def rival_claims_4_4(pool_id_arg, user_id):
            db.session.execute(
                sa.update(Square)
                .where(Square.pool_id == pool_id, Square.row == 4, Square.col == 4,
                       Square.claimed_by_user_id.is_(None))
                .values(claimed_by_user_id=rival_id, claimed_display_name='Sam Second')
            )
            db.session.commit()
            return 0

        with patch('app.squares.utils.get_user_square_count', side_effect=rival_claims_4_4):
            with pytest.raises(SquareAlreadyClaimedError) as exc_info:
                claim_squares(pool_id, player.id, player.name, player.email, [[5, 5], [4, 4]])

        assert (exc_info.value.row, exc_info.value.col) == (4, 4)
        assert claimed_cells(pool_id) == {(4, 4): rival_id}
        assert db.session.scalar(sa.select(sa.func.count()).select_from(PoolEvent)) == 0

    def test_reclaiming_own_square_conflicts(self, app, db_session, test_pool, player):
        claim(test_pool, player, [[4, 4]])
        with pytest.raises(SquareAlreadyClaimedError):
            claim(test_pool, player, [[4, 4]])

    def test_limit_is_all_or_nothing(self, app, db_session, test_pool, player):
        # test_pool allows 5 squares per user
        claim(test_pool, player, [[0, 0], [0, 1], [0, 2]])

        with pytest.raises(ClaimLimitError) as exc_info:
            claim(test_pool, player, [[1, 0], [1, 1], [1, 2]])

        assert exc_info.value.details == {'limit': 5, 'current': 3, 'requested': 3}
        assert get_user_square_count(test_pool.id, player.id) == 3
        assert get_square(test_pool.id, 1, 0).claimed_by_user_id is None

    def test_claim_up_to_limit(self, app, db_session, test_pool, player):
        claim(test_pool, player, [[0, c] for c in range(5)])
        assert get_user_square_count(test_pool.id, player.id) == 5

    @pytest.mark.parametrize('status', ['locked', 'numbered', 'completed'])
    def test_claim_requires_open_pool(self, app, db_session, owner, player, status):
        pool = PoolFactory.create(owner=owner, status=status)
        with pytest.raises(WrongStateError) as exc_info:
            claim(pool, player, [[0, 0]])
        assert exc_info.value.status == status
        assert get_claimed_square_count(pool.id) == 0

    def test_unknown_pool(self, app, db_session, player):
        with pytest.raises(PoolNotFoundError):
            claim_squares('missing', player.id, player.name, player.email, [[0, 0]])


@pytest.mark.unit
class TestUnclaimSquare:

    def test_owner_of_square_can_unclaim(self, app, db_session, test_pool, player):
        claim(test_pool, player, [[3, 3]])
        unclaim_square(test_pool.id, 3, 3, player.id)

        square = get_square(test_pool.id, 3, 3)
        assert square.claimed_by_user_id is None
        assert square.claimed_display_name is None
        assert square.claimed_at is None

    def test_other_user_cannot_unclaim(self, app, db_session, test_pool, player, other_player):
        claim(test_pool, player, [[3, 3]])

        with pytest.raises(NotSquareOwnerError):
            unclaim_square(test_pool.id, 3, 3, other_player.id)

        assert get_square(test_pool.id, 3, 3).claimed_by_user_id == player.id

    def test_unclaimed_square(self, app, db_session, test_pool, player):
        with pytest.raises(SquareNotClaimedError):
            unclaim_square(test_pool.id, 3, 3, player.id)

    def test_unclaim_requires_open_pool(self, app, db_session, owner, player):
        pool = PoolFactory.create(owner=owner, status='locked')
        with pytest.raises(WrongStateError):
            unclaim_square(pool.id, 0, 0, player.id)


@pytest.mark.unit
class TestClearBoard:

    def test_owner_clears_every_claim(self, app, db_session, test_pool, owner, player, other_player):
        claim(test_pool, player, [[0, 0], [1, 1]])
        claim(test_pool, other_player, [[2, 2]])

        assert clear_board(test_pool.id, owner.id) == 3
        assert get_claimed_square_count(test_pool.id) == 0

        event = db_session.scalar(sa.select(PoolEvent).where(PoolEvent.type == 'board_cleared'))
        assert event.payload == {'cleared': 3}

    def test_clear_in_any_status(self, app, db_session, numbered_pool, owner):
        assert clear_board(numbered_pool.id, owner.id) == 0

    def test_non_owner_cannot_clear(self, app, db_session, test_pool, player):
        claim(test_pool, player, [[0, 0]])
        with pytest.raises(NotPoolOwnerError):
            clear_board(test_pool.id, player.id)
        assert get_claimed_square_count(test_pool.id) == 1


@pytest.mark.unit
class TestBoard:

    def test_board_snapshot(self, app, db_session, test_pool, player):
        claim(test_pool, player, [[9, 9]])
        board = get_board(test_pool)

        assert board['total_squares'] == 100
        assert board['claimed_count'] == 1
        assert board['axis'] is None
        assert board['squares'][0]['row'] == 0
        assert board['squares'][-1]['claimed_by_user_id'] == player.id

    def test_numbered_board_includes_axis(self, app, db_session, numbered_pool):
        board = get_board(numbered_pool)
        assert board['axis']['x_digits'] == list(range(10))
