from flask import Blueprint, jsonify, current_app
from cardiac_trader import round_registry

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to Cardiac Trader!'})

@main.route('/health')
def health():
    return jsonify({
        'status': 'ok',
        'backend_api_url': current_app.config.get('BACKEND_API_URL'),
        'active_sessions': len(round_registry()),
    })
