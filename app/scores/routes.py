from flask import jsonify
from flask_login import login_required, current_user

from app.scores import bp
from app.scores.utils import remove_score, update_scores
from app.utils import get_json_body


@bp.route('/<pool_id>/scores', methods=['PUT'])
@login_required
def put_scores(pool_id):
    """
    Enter or correct scores:
    {"scores": [{"bucket": "Q1", "home_score": 7, "away_score": 3}, ...]}
    """
    body = get_json_body()
    scores, completed = update_scores(pool_id, current_user.id, body.get('scores'))
    return jsonify({
        'success': True,
        'scores': [score.to_dict() for score in scores],
        'completed': completed,
    })


@bp.route('/<pool_id>/scores/<bucket>', methods=['DELETE'])
@login_required
def delete_score(pool_id, bucket):
    reverted = remove_score(pool_id, current_user.id, bucket)
    return jsonify({'success': True, 'status_reverted': reverted})
