"""
app.py - Main Flask application with WebSocket support
"""

import os

if os.environ.get('SOCKETIO_ASYNC_MODE', 'gevent') == 'gevent':
    from gevent import monkey
    monkey.patch_all()

from flask import Flask, request, jsonify
from flask_socketio import SocketIO, emit, join_room, leave_room
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from typing import Dict
import logging

from bot_scheduler import SocketIOScheduler
from broadcast import ERROR, GAME_STATE, SocketIOBroadcaster, get_room_channel
from config import Config
from game_service import JassService
from game_state import GameError
from room_store import InMemoryRoomStore, lock_factory_for

logging.basicConfig(
    level=Config.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("jass")

MAX_NAME_LENGTH = 32

# Client errors keep 400 unless a more specific status fits
ERROR_STATUS = {
    GameError.INVALID_REQUEST: 400,
    GameError.INVALID_CARD_INDEX: 400,
    GameError.ILLEGAL_MOVE: 400,
    GameError.NOT_HOST: 403,
    GameError.ROOM_NOT_FOUND: 404,
    GameError.PLAYER_NOT_FOUND: 404,
    GameError.ROOM_FULL: 409,
    GameError.ALREADY_JOINED: 409,
    GameError.GAME_ALREADY_STARTED: 409,
    GameError.GAME_NOT_IN_PROGRESS: 409,
    GameError.WRONG_TURN: 409,
    GameError.ROUND_NOT_FINISHED: 409,
}

app = Flask(__name__)
app.config.from_object(Config)
CORS(app, origins=app.config['CORS_ORIGINS'])
socketio = SocketIO(app, cors_allowed_origins=app.config['CORS_ORIGINS'],
                    async_mode=app.config['SOCKETIO_ASYNC_MODE'])

DEVELOPER_MODE = app.config['DEVELOPER_MODE']

store = InMemoryRoomStore(winning_score=app.config['WINNING_SCORE'], reveal_all=DEVELOPER_MODE,
                          lock_factory=lock_factory_for(app.config['SOCKETIO_ASYNC_MODE']))
service = JassService(
    store,
    SocketIOBroadcaster(socketio),
    SocketIOScheduler(socketio),
    bot_delay=app.config['BOT_DELAY'],
    trick_delay=app.config['TRICK_DELAY'],
    idle_room_timeout=app.config['IDLE_ROOM_TIMEOUT'],
)

# Socket session id -> (room_id, player_id)
player_connections: Dict[str, tuple] = {}


def error_response(message: str, code: str, status: int = 400):
    return jsonify({'error': message, 'code': code}), status


def invalid_request(message: str):
    return error_response(message, GameError.INVALID_REQUEST.value, 400)


def result_error(result: Dict):
    error = result['error']
    return error_response(result['message'], error.value, ERROR_STATUS.get(error, 400))


def request_data() -> Dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def clean_name(value):
    if not isinstance(value, str) or not value.strip():
        return None
    return value.strip()[:MAX_NAME_LENGTH]


def clean_id(value):
    if not isinstance(value, str) or not value.strip():
        return None
    return value.strip()


@app.errorhandler(Exception)
def handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return e
    logger.exception("Unhandled error on %s %s", request.method, request.path)
    return error_response('Internal server error', 'internal_error', 500)


@app.route('/')
def index():
    return jsonify({
        'name': 'jass',
        'developer_mode': DEVELOPER_MODE,
        'rooms': len(service.store.room_ids())
    })


@app.route('/api/health')
def health():
    return jsonify({'status': 'ok', 'rooms': len(service.store.room_ids())})


@app.route('/api/room', methods=['POST'])
def create_room():
    player_name = clean_name(request_data().get('playerName'))
    if not player_name:
        return invalid_request('Player name is required')

    result = service.create_room(player_name)
    if not result['success']:
        return result_error(result)
    return jsonify({
        'success': True,
        'roomId': result['room_id'],
        'playerId': result['player_id'],
        'state': result['game_state']
    })


@app.route('/api/room', methods=['GET'])
def get_room():
    room_id = clean_id(request.args.get('id'))
    if not room_id:
        return invalid_request('Room ID is required')

    state = service.get_view(room_id, clean_id(request.args.get('playerId')))
    if state is None:
        return error_response('Room not found', GameError.ROOM_NOT_FOUND.value, 404)
    return jsonify({'state': state})


@app.route('/api/room/join', methods=['POST'])
def join_game():
    data = request_data()
    room_id = clean_id(data.get('roomId'))
    player_name = clean_name(data.get('playerName'))
    if not room_id:
        return invalid_request('Room ID is required')
    if not player_name:
        return invalid_request('Player name is required')

    result = service.join_room(room_id, player_name)
    if not result['success']:
        return result_error(result)
    return jsonify({
        'success': True,
        'roomId': result['room_id'],
        'playerId': result['player_id'],
        'state': result['game_state']
    })


@app.route('/api/room/leave', methods=['POST'])
def leave_game():
    data = request_data()
    room_id = clean_id(data.get('roomId'))
    player_id = clean_id(data.get('playerId'))
    if not room_id or not player_id:
        return invalid_request('Room ID and player ID are required')

    result = service.leave_room(room_id.upper(), player_id)
    if not result['success']:
        return result_error(result)
    return jsonify({'success': True, 'roomDeleted': result['room_deleted']})


@app.route('/api/game/start', methods=['POST'])
def start_game():
    data = request_data()
    room_id = clean_id(data.get('roomId'))
    player_id = clean_id(data.get('playerId'))
    if not room_id or not player_id:
        return invalid_request('Room ID and player ID are required')

    result = service.start_game(room_id.upper(), player_id)
    if not result['success']:
        return result_error(result)
    return jsonify({'success': True, 'state': result['game_state']})


@app.route('/api/game/next-round', methods=['POST'])
def next_round():
    data = request_data()
    room_id = clean_id(data.get('roomId'))
    player_id = clean_id(data.get('playerId'))
    if not room_id or not player_id:
        return invalid_request('Room ID and player ID are required')

    result = service.next_round(room_id.upper(), player_id)
    if not result['success']:
        return result_error(result)
    return jsonify({'success': True, 'state': result['game_state']})


@app.route('/api/game/play', methods=['POST'])
def play_card():
    data = request_data()
    room_id = clean_id(data.get('roomId'))
    player_id = clean_id(data.get('playerId'))
    card_index = data.get('cardIndex')
    if not room_id or not player_id or card_index is None:
        return invalid_request('Room ID, player ID and card index are required')
    if isinstance(card_index, bool) or not isinstance(card_index, int):
        return invalid_request('Card index must be an integer')

    result = service.play_card(room_id.upper(), player_id, card_index)
    if not result['success']:
        return result_error(result)
    return jsonify({
        'success': True,
        'trickComplete': result['trick_complete'],
        'trickWinner': result['trick_winner'],
        'roundOver': result['round_over'],
        'gameOver': result['game_over'],
        'state': result['game_state']
    })


@socketio.on('connect')
def handle_connect():
    emit('connected', {'session_id': request.sid})


@socketio.on('disconnect')
def handle_disconnect():
    connection = player_connections.pop(request.sid, None)
    if connection:
        room_id, player_id = connection
        if player_id:
            service.set_connected(room_id, player_id, False)


@socketio.on('subscribe')
def handle_subscribe(data):
    data = data if isinstance(data, dict) else {}
    room_id = clean_id(data.get('roomId'))
    player_id = clean_id(data.get('playerId'))
    if not room_id:
        emit(ERROR, {'error': 'Room ID is required', 'code': GameError.INVALID_REQUEST.value})
        return

    room_id = room_id.upper()
    state = service.get_view(room_id, player_id)
    if state is None:
        emit(ERROR, {'error': 'Room not found', 'code': GameError.ROOM_NOT_FOUND.value})
        return

    join_room(get_room_channel(room_id))
    player_connections[request.sid] = (room_id, player_id)
    if player_id:
        service.set_connected(room_id, player_id, True)
    emit(GAME_STATE, {'game_state': state})


@socketio.on('unsubscribe')
def handle_unsubscribe(data=None):
    connection = player_connections.pop(request.sid, None)
    if connection:
        leave_room(get_room_channel(connection[0]))


if __name__ == '__main__':
    socketio.run(app, host=app.config['HOST'], port=app.config['PORT'], debug=DEVELOPER_MODE)
