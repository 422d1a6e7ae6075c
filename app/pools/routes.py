"""
Pool routes.

Each route parses its input, calls one operation from app.pools.utils and
returns JSON. Errors raised by the operations are turned into responses by
the handlers in app.errors.
"""

from flask import current_app, jsonify, request, session
from flask_login import login_required, current_user

from app import limiter
from app.errors import PoolNotFoundError, ValidationError
from app.event_log import get_pool_events
from app.pools import bp
from app.pools.forms import PoolForm, PoolSettingsForm, form_errors, form_from_json
from app.pools.utils import (
    FieldChanges, can_view_pool, create_pool, delete_pool, get_pools_for_user,
    get_public_pools, lock_pool, randomize_pool, unlock_pool, unrandomize_pool,
    update_pool_settings, verify_invite_code
)
from app.scores.utils import get_pool_scores, get_pool_winners
from app.squares.utils import get_board
from app.utils import get_json_body, get_pool_or_404, parse_int, require_owner


def joined_pool_ids():
    return session.get('joined_pools', [])


def get_visible_pool(pool_id):
    """The pool, or a 404 when the current user may not see it."""
    pool = get_pool_or_404(pool_id)
    if not can_view_pool(current_user.id, pool, joined_pool_ids()):
        raise PoolNotFoundError()
    return pool


@bp.route('/', methods=['POST'])
@login_required
def create():
    """
    Create a pool owned by the current user.
    """
    form = form_from_json(PoolForm, get_json_body())
    if not form.validate():
        raise ValidationError('Invalid pool details', details=form_errors(form))

    pool, invite_code = create_pool(
        owner=current_user,
        name=form.name.data.strip(),
        game_name=form.game_name.data.strip(),
        home_team=form.home_team.data.strip(),
        away_team=form.away_team.data.strip(),
        game_time=form.game_time.data,
        square_price=form.square_price.data,
        max_squares_per_user=form.max_squares_per_user.data,
        visibility=form.visibility.data,
        entry_fee_info=form.entry_fee_info.data,
        rules=form.rules.data,
        invite_code=form.invite_code.data or None,
    )
    current_app.logger.info(f"User {current_user.id} created pool {pool.id}")

    response = {'success': True, 'pool': pool.to_dict()}
    if invite_code:
        response['invite_code'] = invite_code
    return jsonify(response), 201


@bp.route('/', methods=['GET'])
def list_public():
    """Public pools, newest first, paged with limit/offset."""
    default_size = current_app.config['PUBLIC_POOLS_PAGE_SIZE']
    limit = parse_int(request.args.get('limit', default_size), 'limit',
                      minimum=1, maximum=current_app.config['PUBLIC_POOLS_MAX_PAGE_SIZE'])
    offset = parse_int(request.args.get('offset', 0), 'offset', minimum=0)

    pools = get_public_pools(limit, offset)
    return jsonify({
        'success': True,
        'pools': [pool.to_dict() for pool in pools],
        'limit': limit,
        'offset': offset,
    })


@bp.route('/mine', methods=['GET'])
@login_required
def list_mine():
    pools = get_pools_for_user(current_user.id)
    return jsonify({'success': True, 'pools': [pool.to_dict() for pool in pools]})


@bp.route('/<pool_id>', methods=['GET'])
@login_required
def detail(pool_id):
    pool = get_visible_pool(pool_id)
    return jsonify({
        'success': True,
        'pool': pool.to_dict(),
        'is_owner': pool.is_owned_by(current_user.id),
    })


@bp.route('/<pool_id>', methods=['PATCH'])
@login_required
def update(pool_id):
    """
    Update the supplied pool fields. Omitted fields are left unchanged.
    """
    form = form_from_json(PoolSettingsForm, get_json_body())
    if not form.validate():
        raise ValidationError('Invalid pool settings', details=form_errors(form))

    pool, diff = update_pool_settings(pool_id, current_user.id, FieldChanges.from_form(form))
    return jsonify({
        'success': True,
        'pool': pool.to_dict(),
        'changed': sorted(diff),
    })


@bp.route('/<pool_id>', methods=['DELETE'])
@login_required
def delete(pool_id):
    delete_pool(pool_id, current_user.id)
    current_app.logger.info(f"User {current_user.id} deleted pool {pool_id}")
    return jsonify({'success': True})


@bp.route('/<pool_id>/join', methods=['POST'])
@login_required
@limiter.limit('10 per minute')
def join(pool_id):
    """
    Check a private pool's invite code and remember the pool in the session.
    """
    body = get_json_body()
    code = body.get('invite_code')
    if not isinstance(code, str):
        raise ValidationError('invite_code is required')

    pool = verify_invite_code(pool_id, code)

    joined = joined_pool_ids()
    if pool.id not in joined:
        session['joined_pools'] = joined + [pool.id]

    return jsonify({'success': True, 'pool': pool.to_dict()})


@bp.route('/<pool_id>/lock', methods=['POST'])
@login_required
def lock(pool_id):
    pool = lock_pool(pool_id, current_user.id)
    return jsonify({'success': True, 'status': pool.status})


@bp.route('/<pool_id>/unlock', methods=['POST'])
@login_required
def unlock(pool_id):
    pool = unlock_pool(pool_id, current_user.id)
    return jsonify({'success': True, 'status': pool.status})


@bp.route('/<pool_id>/randomize', methods=['POST'])
@login_required
def randomize(pool_id):
    pool, axis = randomize_pool(pool_id, current_user.id)
    return jsonify({
        'success': True,
        'status': pool.status,
        'x_digits': axis.x_digits,
        'y_digits': axis.y_digits,
    })


@bp.route('/<pool_id>/unrandomize', methods=['POST'])
@login_required
def unrandomize(pool_id):
    pool = unrandomize_pool(pool_id, current_user.id)
    return jsonify({'success': True, 'status': pool.status})


@bp.route('/<pool_id>/board', methods=['GET'])
@login_required
def board(pool_id):
    pool = get_visible_pool(pool_id)
    snapshot = get_board(pool)
    snapshot['scores'] = [score.to_dict() for score in get_pool_scores(pool.id)]
    return jsonify({'success': True, **snapshot})


@bp.route('/<pool_id>/events', methods=['GET'])
@login_required
def events(pool_id):
    pool = get_pool_or_404(pool_id)
    require_owner(pool, current_user.id, 'view event log of')

    limit = parse_int(request.args.get('limit', current_app.config['EVENT_LOG_LIMIT']), 'limit',
                      minimum=1, maximum=current_app.config['EVENT_LOG_LIMIT'])
    return jsonify({
        'success': True,
        'events': [event.to_dict() for event in get_pool_events(pool.id, limit)],
    })


@bp.route('/<pool_id>/winners', methods=['GET'])
@login_required
def winners(pool_id):
    pool = get_visible_pool(pool_id)
    return jsonify({
        'success': True,
        'status': pool.status,
        'winners': [winner.to_dict() for winner in get_pool_winners(pool)],
    })
