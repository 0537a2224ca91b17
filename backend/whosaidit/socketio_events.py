from functools import wraps

from flask import current_app, request
from flask_socketio import join_room, leave_room, emit

from whosaidit import socketio
from whosaidit.errors import GameError, InvalidPayload
from whosaidit.services import get_engine, get_connections
from whosaidit.services.games import AnswerOutcome, VoteOutcome, ReadyOutcome
from whosaidit.services.rooms import normalize_code


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _require(data, *fields):
    data = data or {}
    missing = [f for f in fields if not data.get(f)]
    if missing:
        raise InvalidPayload(f"Missing {', '.join(missing)}")
    return [data.get(f) for f in fields]


def _send(event, payload, to):
    """Emit to one room or connection; a failed send is logged and skipped."""
    try:
        emit(event, payload, to=to)
    except Exception:
        current_app.logger.exception(f"[emit-failed] event={event} to={to}")


def _reports_errors(handler):
    """Turn failures into a single ``error`` event for the originating connection only."""
    @wraps(handler)
    def wrapper(*args, **kwargs):
        try:
            return handler(*args, **kwargs)
        except GameError as exc:
            current_app.logger.info(f"[ws-error] sid={_get_sid()} event={handler.__name__} code={exc.code}")
            emit('error', {'code': exc.code, 'message': str(exc)})
        except Exception:
            current_app.logger.exception(f"[ws-error] sid={_get_sid()} event={handler.__name__}")
            emit('error', {'code': 'internal_error', 'message': 'Something went wrong'})
    return wrapper


# ---- Fan-out ----

def _broadcast_voting_phase(engine, room):
    """Each connected player gets the answers in their own order, minus their own."""
    state = room.to_dict()
    for player in room.connected_players():
        if not player.connection_ref:
            continue
        _send('voting-phase', {
            'room': state,
            'answers': engine.shuffled_answers_for(room, player.id),
        }, to=player.connection_ref)


def _broadcast_round_results(outcome):
    _send('round-results', {
        'room': outcome.room.to_dict(),
        'results': outcome.results,
        'winners': outcome.winners,
    }, to=outcome.room.code)


def _broadcast_ready_outcome(engine, outcome):
    room = outcome.room
    if outcome.game_over:
        _send('game-over', {
            'room': room.to_dict(),
            'final_scores': outcome.final_scores,
            'winner': outcome.winner,
        }, to=room.code)
    elif outcome.advanced:
        _send('next-round', {
            'room': room.to_dict(),
            'current_question': engine.current_question(room),
        }, to=room.code)


def _broadcast_outcome(engine, outcome):
    if isinstance(outcome, AnswerOutcome) and outcome.phase_changed:
        _broadcast_voting_phase(engine, outcome.room)
    elif isinstance(outcome, VoteOutcome) and outcome.phase_changed:
        _broadcast_round_results(outcome)
    elif isinstance(outcome, ReadyOutcome):
        _broadcast_ready_outcome(engine, outcome)


def _reconcile(engine, code):
    """Let the remaining players move on when a departure completed the current phase."""
    outcome = engine.reconcile(code)
    if outcome is not None:
        current_app.logger.info(f"[reconcile] room={code} state={outcome.room.game_state}")
        _broadcast_outcome(engine, outcome)


# ---- Handlers ----

def handle_connect(auth=None):
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(reason=None):
    # The player keeps their seat and round progress; only the connection goes away
    ctx = get_connections().pop(_get_sid())
    if not ctx:
        return
    engine = get_engine()
    try:
        room = engine.disconnect_player(ctx.room_code, ctx.player_id, _get_sid())
        if room is None:
            return
        _send('player-disconnected', {'player_id': ctx.player_id, 'room': room.to_dict()}, to=room.code)
        if room.game_state in ('answering', 'voting', 'results'):
            _reconcile(engine, room.code)
    except Exception:
        current_app.logger.exception(f"[disconnect] room={ctx.room_code} player={ctx.player_id} cleanup failed")


@_reports_errors
def handle_join_room(data):
    code, player_id = _require(data, 'room_code', 'player_id')
    code = normalize_code(code)
    engine = get_engine()
    sid = _get_sid()
    room, was_disconnected = engine.connect_player(code, player_id, sid)

    connections = get_connections()
    previous = connections.get(sid)
    if previous and previous.room_code != code:
        leave_room(previous.room_code)
    connections.bind(sid, code, player_id)
    join_room(code)

    emit('room-state', {'room': room.to_dict(), 'current_question': engine.current_question(room)})
    player = room.get_player(player_id)
    event = 'player-reconnected' if was_disconnected else 'player-joined'
    emit(event, {'player': player.to_dict(), 'room': room.to_dict()}, to=code, include_self=False)


@_reports_errors
def handle_start_game(data):
    code, player_id = _require(data, 'room_code', 'player_id')
    engine = get_engine()
    room = engine.start_game(code, player_id)
    _send('game-started', {
        'room': room.to_dict(),
        'current_question': engine.current_question(room),
    }, to=room.code)


@_reports_errors
def handle_submit_answer(data):
    code, player_id = _require(data, 'room_code', 'player_id')
    engine = get_engine()
    outcome = engine.submit_answer(code, player_id, data.get('text'))
    room = outcome.room
    _send('answer-submitted', {
        'player_id': player_id,
        'player_name': outcome.player.name if outcome.player else None,
        'answer_count': len(room.current_round_record.answers),
    }, to=room.code)
    _broadcast_outcome(engine, outcome)


@_reports_errors
def handle_submit_vote(data):
    code, player_id, voted_for = _require(data, 'room_code', 'player_id', 'voted_for_player_id')
    engine = get_engine()
    outcome = engine.submit_vote(code, player_id, voted_for)
    _send('vote-submitted', {
        'player_id': player_id,
        'player_name': outcome.player.name if outcome.player else None,
    }, to=outcome.room.code)
    _broadcast_outcome(engine, outcome)


@_reports_errors
def handle_mark_ready(data):
    code, player_id = _require(data, 'room_code', 'player_id')
    engine = get_engine()
    outcome = engine.mark_ready(code, player_id)
    _send('player-ready', {
        'player_id': player_id,
        'player_name': outcome.player.name if outcome.player else None,
    }, to=outcome.room.code)
    _broadcast_outcome(engine, outcome)


@_reports_errors
def handle_play_again(data):
    (code,) = _require(data, 'room_code')
    room = get_engine().reset_game(code)
    _send('game-reset', {'room': room.to_dict()}, to=room.code)


def handle_leave_room(data):
    data = data or {}
    code = normalize_code(data.get('room_code'))
    player_id = data.get('player_id')
    if not code or not player_id:
        return
    connections = get_connections()
    ctx = connections.get(_get_sid())
    if ctx and ctx.room_code == code and ctx.player_id == player_id:
        connections.pop(_get_sid())
    leave_room(code)
    engine = get_engine()
    try:
        room = engine.leave_room(code, player_id)
        if room is None:
            return
        _send('player-left', {'player_id': player_id, 'room': room.to_dict()}, to=room.code)
        if room.game_state in ('answering', 'voting', 'results'):
            _reconcile(engine, room.code)
    except Exception:
        current_app.logger.exception(f"[leave] room={code} player={player_id} failed")


def register_socketio_handlers(namespace: str = '/ws') -> None:
    """Register the game event handlers on ``namespace``."""
    socketio.on_event('connect', handle_connect, namespace=namespace)
    socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
    socketio.on_event('join-room', handle_join_room, namespace=namespace)
    socketio.on_event('start-game', handle_start_game, namespace=namespace)
    socketio.on_event('submit-answer', handle_submit_answer, namespace=namespace)
    socketio.on_event('submit-vote', handle_submit_vote, namespace=namespace)
    socketio.on_event('mark-ready', handle_mark_ready, namespace=namespace)
    socketio.on_event('play-again', handle_play_again, namespace=namespace)
    socketio.on_event('leave-room', handle_leave_room, namespace=namespace)
