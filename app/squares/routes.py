from flask import jsonify
from flask_login import login_required, current_user

from app import limiter
from app.squares import bp
from app.squares.utils import claim_squares, clear_board, unclaim_square
from app.utils import get_json_body


@bp.route('/<pool_id>/squares/claim', methods=['POST'])
@login_required
@limiter.limit('30 per minute')
def claim(pool_id):
    """
    Claim a batch of squares: {"squares": [{"row": 0, "col": 3}, ...]}.
    All of them are claimed or none are.
    """
    body = get_json_body()
    cells = claim_squares(
        pool_id,
        current_user.id,
        display_name=current_user.name,
        email=current_user.email,
        cells=body.get('squares'),
    )
    return jsonify({
        'success': True,
        'claimed': [{'row': row, 'col': col} for row, col in cells],
    })


@bp.route('/<pool_id>/squares/<row>/<col>', methods=['DELETE'])
@login_required
def unclaim(pool_id, row, col):
    unclaim_square(pool_id, row, col, current_user.id)
    return jsonify({'success': True})


@bp.route('/<pool_id>/squares/clear', methods=['POST'])
@login_required
def clear(pool_id):
    cleared = clear_board(pool_id, current_user.id)
    return jsonify({'success': True, 'cleared': cleared})
