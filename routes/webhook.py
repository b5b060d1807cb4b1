from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import text

from extensions import db, limiter
from services.dispatcher import build_dispatcher
from services.errors import InvalidSignature, MessagingError
from services.messenger import get_messenger

webhook_bp = Blueprint('webhook', __name__)


def _callback_rate_limit():
    return current_app.config.get('CALLBACK_RATE_LIMIT', '600 per minute')


def _callback_rate_key():
    # Every callback comes from the platform's own egress, so there is no
    # per-client key worth using. The limit is one bucket for the route.
    return 'line-callback'


@webhook_bp.route('/callback', methods=['POST'])
@limiter.limit(_callback_rate_limit, key_func=_callback_rate_key)
def callback():
    signature = request.headers.get('X-Line-Signature', '')
    body = request.get_data(as_text=True)
    messenger = get_messenger()

    try:
        messages = messenger.parse_events(body, signature)
    except InvalidSignature:
        current_app.logger.warning("Rejected webhook call with an invalid signature")
        return 'Invalid signature', 400
    except Exception as e:
        current_app.logger.error(f"Failed to parse webhook body: {e}", exc_info=True)
        return 'Bad request body', 500

    dispatcher = build_dispatcher()
    for message in messages:
        reply = dispatcher.handle(message)
        try:
            messenger.reply(message.reply_token, reply)
        except MessagingError as e:
            current_app.logger.error(f"Reply to user {message.user_id} failed: {e}")

    return 'OK', 200


@webhook_bp.route('/health')
@limiter.exempt
def health():
    health_info = {'status': 'healthy'}
    try:
        db.session.execute(text('SELECT 1'))
        health_info['database'] = 'connected'
    except Exception as e:
        current_app.logger.error(f"Health check database query failed: {e}")
        db.session.rollback()
        health_info['database'] = 'disconnected'
    return jsonify(health_info)
