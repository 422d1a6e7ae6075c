import hmac

from flask import current_app, jsonify, request

from app import limiter
from app.audit import audit_log_security_event
from app.cron import bp
from app.models import utcnow
from app.pools.utils import auto_lock_pools


def cron_authorized():
    """
    True when no CRON_SECRET is configured, or the request carries it as a
    bearer token.
    """
    secret = current_app.config.get('CRON_SECRET')
    if not secret:
        return True
    header = request.headers.get('Authorization', '')
    return hmac.compare_digest(header.encode(), f'Bearer {secret}'.encode())


@bp.route('/auto-lock-pools', methods=['GET', 'POST'])
@limiter.exempt
def auto_lock():
    """
    Lock and randomize every pool whose game time has passed.
    Called by the scheduler; see also `flask auto-lock-pools`.
    """
    if not cron_authorized():
        audit_log_security_event('INVALID_TOKEN', 'Auto-lock sweep called with a bad cron secret')
        return jsonify({'success': False, 'code': 'unauthorized', 'error': 'Unauthorized'}), 401

    now = utcnow()
    results = auto_lock_pools(now)
    return jsonify({
        'success': True,
        'processed': len(results),
        'results': results,
        'timestamp': now.isoformat(),
    })
