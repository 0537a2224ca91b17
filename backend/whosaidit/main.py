from flask import Blueprint, jsonify
from whosaidit.models import utcnow

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'name': 'Who Said It API', 'status': 'running'})

@main.route('/health')
def health():
    return jsonify({'status': 'ok', 'timestamp': utcnow().isoformat() + 'Z'})
