from flask import Blueprint, jsonify, request, current_app
from cardiac_trader import round_registry
from cardiac_trader.errors import BackendError, InvalidLifecycleTransition, TransientNetworkFailure
from cardiac_trader.models import CachedSession, cache_game_session
from cardiac_trader.services.dto import DIFFICULTY_LEVELS, TRANSACTION_TYPES
from cardiac_trader.services.rounds import apply_time_boost


games = Blueprint('games', __name__)

TOOL_TYPES = ('HINT', 'TIME_BOOST')


@games.errorhandler(BackendError)
def handle_backend_error(exc):
    current_app.logger.warning(f"[backend] {request.method} {request.path} failed: {exc.message}")
    return jsonify(exc.to_dict()), 502


@games.errorhandler(InvalidLifecycleTransition)
def handle_invalid_transition(exc):
    return jsonify({'error': str(exc)}), 409


def _controller(session_id: str):
    """Return the session's controller, rebuilding it from the cache after a restart."""
    registry = round_registry()
    controller = registry.get(session_id)
    if controller is None and CachedSession.query.filter_by(session_id=session_id).first():
        controller = registry.get_or_create(session_id)
    return controller


def _not_found(session_id: str):
    return jsonify({'error': f'No active game session {session_id}'}), 404


@games.route('/start', methods=['POST'])
def start_game():
    data = request.get_json(silent=True) or {}
    user_id = data.get('user_id')
    if not user_id:
        return jsonify({'error': 'user_id is required'}), 400
    difficulty = str(data.get('difficulty') or current_app.config.get('DEFAULT_DIFFICULTY', 'MEDIUM')).upper()
    if difficulty not in DIFFICULTY_LEVELS:
        return jsonify({'error': f"difficulty must be one of {', '.join(DIFFICULTY_LEVELS)}"}), 400

    registry = round_registry()
    previous = CachedSession.query.filter_by(user_id=str(user_id)).first()
    previous_id = previous.session_id if previous else None
    session = registry.gateway.start_new_game(str(user_id), difficulty)
    if previous_id and previous_id != session.id:
        # The old game is abandoned; stop its timers and polling
        registry.drop(previous_id)
        current_app.logger.info(f"[game-replace] user={user_id} session={previous_id} -> {session.id}")
    cache_game_session(session)
    controller = registry.replace(session.id)
    current_app.logger.info(f"[game-start] user={user_id} session={session.id} difficulty={difficulty}")

    payload = session.to_dict()
    payload['round'] = controller.snapshot()
    return jsonify(payload), 201


@games.route('/session', methods=['GET'])
def get_current_session():
    user_id = request.args.get('user_id')
    if not user_id:
        return jsonify({'error': 'user_id is required'}), 400
    try:
        session = round_registry().gateway.get_current_session(user_id)
    except TransientNetworkFailure:
        cached = CachedSession.query.filter_by(user_id=user_id).first()
        if cached is None:
            raise
        current_app.logger.info(f"[session-cache] user={user_id} serving cached session={cached.session_id}")
        return jsonify(cached.to_dict())
    if session is None:
        return jsonify({'error': 'No active game session'}), 404
    cache_game_session(session)
    payload = session.to_dict()
    payload['cached'] = False
    return jsonify(payload)


@games.route('/<string:session_id>/state', methods=['GET'])
def get_round_state(session_id):
    controller = _controller(session_id)
    if controller is None:
        return _not_found(session_id)
    return jsonify(controller.snapshot())


@games.route('/<string:session_id>/round/start', methods=['POST'])
def start_round(session_id):
    controller = _controller(session_id)
    if controller is None:
        return _not_found(session_id)
    controller.start_round()
    return jsonify(controller.snapshot()), 201


@games.route('/<string:session_id>/round/retry', methods=['POST'])
def retry_round_completion(session_id):
    controller = _controller(session_id)
    if controller is None:
        return _not_found(session_id)
    if not controller.retry_completion():
        return jsonify({'error': 'No failed round completion to retry'}), 409
    return jsonify(controller.snapshot())


@games.route('/<string:session_id>/round/abandon', methods=['POST'])
def abandon_round(session_id):
    controller = _controller(session_id)
    if controller is None:
        return _not_found(session_id)
    if not controller.abandon_round():
        return jsonify({'error': 'No active round to abandon'}), 409
    return jsonify(controller.snapshot())


@games.route('/<string:session_id>/result/ack', methods=['POST'])
def acknowledge_result(session_id):
    controller = _controller(session_id)
    if controller is None:
        return _not_found(session_id)
    if not controller.acknowledge_result():
        return jsonify({'error': 'No round result to acknowledge'}), 409
    return jsonify(controller.snapshot())


@games.route('/<string:session_id>/summary/ack', methods=['POST'])
def acknowledge_summary(session_id):
    controller = _controller(session_id)
    if controller is None:
        return _not_found(session_id)
    if not controller.acknowledge_summary():
        return jsonify({'error': 'No game summary to acknowledge'}), 409
    return jsonify(controller.snapshot())


@games.route('/<string:session_id>/tools/time-boost', methods=['POST'])
def use_time_boost(session_id):
    controller = _controller(session_id)
    if controller is None:
        return _not_found(session_id)
    data = request.get_json(silent=True) or {}
    try:
        seconds = int(data.get('seconds', current_app.config.get('TIME_BOOST_SECONDS', 30)))
    except (TypeError, ValueError):
        return jsonify({'error': 'seconds must be an integer'}), 400
    if seconds <= 0:
        return jsonify({'error': 'seconds must be positive'}), 400

    response = round_registry().gateway.use_time_boost(session_id, seconds)
    remaining = apply_time_boost(controller, response)
    payload = {
        'boost': response.to_dict(),
        'applied': remaining is not None,
        'round': controller.snapshot(),
    }
    if not response.success:
        payload['error'] = response.message
        return jsonify(payload), 400
    return jsonify(payload)


@games.route('/<string:session_id>/tools/available', methods=['GET'])
def check_tool_availability(session_id):
    tool_type = (request.args.get('tool_type') or '').upper()
    if tool_type not in TOOL_TYPES:
        return jsonify({'error': f"tool_type must be one of {', '.join(TOOL_TYPES)}"}), 400
    availability = round_registry().gateway.check_tool_availability(session_id, tool_type)
    return jsonify(availability.to_dict())


@games.route('/<string:session_id>/tools/hint', methods=['POST'])
def use_hint(session_id):
    if _controller(session_id) is None:
        return _not_found(session_id)
    data = request.get_json(silent=True) or {}
    stock_id = data.get('stock_id')
    if not stock_id:
        return jsonify({'error': 'stock_id is required'}), 400
    hint = round_registry().gateway.use_hint(session_id, str(stock_id))
    if not hint.success:
        current_app.logger.info(f"[hint-rejected] session={session_id} stock={stock_id} message={hint.message!r}")
        return jsonify(dict(hint.to_dict(), error=hint.message or 'Failed to use hint')), 400
    return jsonify(hint.to_dict())


@games.route('/<string:session_id>/trading/<string:side>', methods=['POST'])
def trade(session_id, side):
    transaction_type = side.upper()
    if transaction_type not in TRANSACTION_TYPES:
        return jsonify({'error': f'Unknown trade side {side}'}), 404
    controller = _controller(session_id)
    if controller is None:
        return _not_found(session_id)
    data = request.get_json(silent=True) or {}
    stock_id = data.get('stock_id')
    if not stock_id:
        return jsonify({'error': 'stock_id is required'}), 400
    try:
        shares = int(data.get('shares'))
    except (TypeError, ValueError):
        return jsonify({'error': 'shares must be an integer'}), 400
    if shares <= 0:
        return jsonify({'error': 'shares must be positive'}), 400

    gateway = round_registry().gateway
    place = gateway.buy_stock if transaction_type == 'BUY' else gateway.sell_stock
    result = place(session_id, str(stock_id), shares)
    current_app.logger.info(
        f"[trade] session={session_id} {transaction_type} stock={stock_id} shares={shares} "
        f"price={result.price_per_share}"
    )
    portfolio = controller.refresh_portfolio()
    return jsonify({
        'trade': result.to_dict(),
        'portfolio': portfolio.to_dict() if portfolio else None,
    })


@games.route('/<string:session_id>/trading/portfolio', methods=['GET'])
def get_portfolio(session_id):
    controller = _controller(session_id)
    if controller is None:
        return _not_found(session_id)
    portfolio = round_registry().gateway.get_portfolio(session_id)
    return jsonify(portfolio.to_dict())


@games.route('/<string:session_id>/market/stocks', methods=['GET'])
def get_available_stocks(session_id):
    if _controller(session_id) is None:
        return _not_found(session_id)
    stocks = round_registry().gateway.get_available_stocks(session_id)
    return jsonify({'stocks': [s.to_dict() for s in stocks]})


@games.route('/<string:session_id>/market/update-prices', methods=['POST'])
def update_market_prices(session_id):
    if _controller(session_id) is None:
        return _not_found(session_id)
    round_registry().gateway.update_market_prices(session_id)
    return jsonify({'updated': True})
