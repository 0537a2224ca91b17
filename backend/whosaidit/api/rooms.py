from flask import Blueprint, jsonify, request, current_app
from whosaidit.errors import GameError, InvalidPayload, InvalidRoomCode
from whosaidit.services import get_engine
from whosaidit.services.rooms import normalize_code


rooms = Blueprint('rooms', __name__)


@rooms.errorhandler(GameError)
def handle_game_error(exc):
    current_app.logger.info(f"[api-error] {request.method} {request.path} code={exc.code}")
    return jsonify(exc.to_dict()), exc.status


def _room_code(code: str) -> str:
    code = normalize_code(code)
    expected = int(current_app.config.get('ROOM_CODE_LENGTH', 6))
    if len(code) != expected or not code.isalnum():
        raise InvalidRoomCode(f'Room code must be {expected} letters or digits')
    return code


@rooms.route('', methods=['POST'])
def create_room():
    """
    Creates a new room with the caller as host.
    """
    data = request.get_json(silent=True) or {}
    room, player_id = get_engine().create_room(data.get('host_name'))
    return jsonify({'room_code': room.code, 'player_id': player_id}), 201


@rooms.route('/<string:code>', methods=['GET'])
def get_room(code):
    engine = get_engine()
    room = engine.get_room(_room_code(code))
    return jsonify({'room': room.to_dict(), 'current_question': engine.current_question(room)})


@rooms.route('/<string:code>/join', methods=['POST'])
def join_room(code):
    """
    Adds a new player to a room that is still waiting for the host to start.
    """
    data = request.get_json(silent=True) or {}
    room, player_id = get_engine().join_room(_room_code(code), data.get('player_name'))
    return jsonify({'room': room.to_dict(), 'player_id': player_id})


@rooms.route('/<string:code>/rejoin', methods=['POST'])
def rejoin_room(code):
    """
    Session recovery: marks an existing player as connected again.
    """
    data = request.get_json(silent=True) or {}
    player_id = data.get('player_id')
    if not player_id:
        raise InvalidPayload('Player ID is required')
    engine = get_engine()
    room = engine.rejoin_room(_room_code(code), player_id)
    return jsonify({
        'room': room.to_dict(),
        'current_question': engine.current_question(room),
        'player_id': player_id,
    })
