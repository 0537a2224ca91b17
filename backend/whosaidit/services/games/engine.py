"""Room game-state machine.

``waiting -> answering -> voting -> results -> (answering | finished)``, plus
an unconditional reset back to ``waiting``.

Each operation is written as guarded updates against the room repository.
When a guard does not match, the room is re-read to raise the precise error;
nothing is retried. Threshold transitions ("everyone connected has
answered") are checked after the player's own update has committed and are
themselves guarded on the phase, so concurrent last submissions flip the
phase exactly once.
"""

import random
import uuid
from dataclasses import dataclass, field
from typing import Optional

from flask import current_app

from whosaidit import db, errors
from whosaidit.models import Room, Player, Round, Answer, Vote
from whosaidit.services.rooms.repository import normalize_code
from .scoring import tally_votes, round_results, round_winners, final_scores


def new_player_id() -> str:
    return str(uuid.uuid4())


@dataclass
class AnswerOutcome:
    room: Room
    player: Optional[Player] = None
    phase_changed: bool = False


@dataclass
class VoteOutcome:
    room: Room
    player: Optional[Player] = None
    phase_changed: bool = False
    results: list = field(default_factory=list)
    winners: list = field(default_factory=list)


@dataclass
class ReadyOutcome:
    room: Room
    player: Optional[Player] = None
    advanced: bool = False
    game_over: bool = False
    final_scores: list = field(default_factory=list)

    @property
    def winner(self):
        return self.final_scores[0] if self.final_scores else None


class GameEngine:
    def __init__(self, rooms, questions, min_players=3, name_min_length=2,
                 name_max_length=20, max_answer_length=200, rng=None):
        self.rooms = rooms
        self.questions = questions
        self.min_players = min_players
        self.name_min_length = name_min_length
        self.name_max_length = name_max_length
        self.max_answer_length = max_answer_length
        self._random = rng or random

    # ---- Helpers ----

    def _validate_name(self, name) -> str:
        name = str(name or '').strip()
        if not (self.name_min_length <= len(name) <= self.name_max_length):
            raise errors.InvalidName(
                f'Name must be {self.name_min_length}-{self.name_max_length} characters'
            )
        return name

    @staticmethod
    def _new_player(player_id, name, join_order) -> Player:
        return Player(
            id=player_id, name=name, score=0, join_order=join_order,
            connection_ref=None, is_connected=True,
            has_answered=False, has_voted=False, is_ready=False,
        )

    def _require_room(self, code) -> Room:
        room = self.rooms.find_by_code(code)
        if room is None:
            raise errors.RoomNotFound()
        return room

    def _diagnose_player_action(self, code, player_id, phase, phase_error):
        """Re-read after a failed player guard and raise what went wrong.

        Returns the player when room, phase and player all check out, which
        means the player's own flag was the guard that failed.
        """
        room = self._require_room(code)
        if room.game_state != phase:
            raise phase_error()
        player = room.get_player(player_id)
        if player is None:
            raise errors.PlayerNotFound()
        return player

    def _pick_target(self, room) -> Optional[Player]:
        connected = room.connected_players()
        if not connected:
            return None
        targeted = {r.target_player_id for r in room.rounds}
        fresh = [p for p in connected if p.id not in targeted]
        # Everyone had a turn: allow repeats rather than cap the round count
        return self._random.choice(fresh or connected)

    def _open_round(self, room, template) -> Player:
        """Append the round for ``room.current_round``; the target is picked from ``room`` as locked by the guard."""
        target = self._pick_target(room)
        if target is None:
            raise errors.InsufficientPlayers('No connected player left to ask about')
        room.rounds.append(Round(
            number=room.current_round,
            question_template=template,
            target_player_id=target.id,
            target_player_name=target.name,
        ))
        room.add_used_question(template)
        room.reset_round_flags()
        return target

    # ---- Room membership ----

    def create_room(self, host_name):
        name = self._validate_name(host_name)
        host = self._new_player(new_player_id(), name, 0)
        room = Room(
            host_id=host.id, game_state='waiting', current_round=0,
            total_rounds=0, used_questions='[]', players=[host],
        )
        room = self.rooms.create(room)
        current_app.logger.info(f"[create] room={room.code} host={host.id}")
        return room, host.id

    def join_room(self, code, player_name):
        name = self._validate_name(player_name)
        code = normalize_code(code)
        player_id = new_player_id()

        def add_player(room):
            folded = name.casefold()
            if any(p.is_connected and p.name.casefold() == folded for p in room.players):
                raise errors.NameAlreadyTaken()
            order = max((p.join_order for p in room.players), default=-1) + 1
            room.players.append(self._new_player(player_id, name, order))

        guard = self.rooms.room_guard(code, Room.game_state == 'waiting')
        room = self.rooms.conditional_update(code, guard, add_player)
        if room is None:
            self._require_room(code)
            raise errors.AlreadyStarted()
        current_app.logger.info(f"[join] room={code} player={player_id}")
        return room, player_id

    def rejoin_room(self, code, player_id):
        room = self.rooms.mark_connected(code, player_id)
        if room is None:
            raise errors.RoomNotFound('Room not found or player not in room')
        current_app.logger.info(f"[rejoin] room={room.code} player={player_id}")
        return room

    def get_room(self, code):
        return self._require_room(code)

    # ---- Connections ----

    def connect_player(self, code, player_id, connection_ref):
        """Bind a live connection to a player.

        Returns ``(room, was_disconnected)``; the flag tells a fresh join
        apart from a reconnect.
        """
        before = self._require_room(code)
        player = before.get_player(player_id)
        was_disconnected = player is not None and not player.is_connected
        room = self.rooms.attach_connection(code, player_id, connection_ref)
        if room is None:
            raise errors.RoomNotFound('Room not found or player not in room')
        current_app.logger.info(
            f"[connect] room={room.code} player={player_id} reconnect={was_disconnected}"
        )
        return room, was_disconnected

    def disconnect_player(self, code, player_id, connection_ref):
        """Mark the player disconnected; None when a newer connection took over or the room is gone."""
        room = self.rooms.detach_connection(code, player_id, connection_ref)
        if room is not None:
            current_app.logger.info(f"[disconnect] room={room.code} player={player_id}")
        return room

    def leave_room(self, code, player_id):
        """Remove or disconnect the player; None when there is nothing left to notify."""
        before = self.rooms.find_by_code(code)
        if before is None or before.get_player(player_id) is None:
            return None
        room = self.rooms.remove_player(code, player_id)
        current_app.logger.info(
            f"[leave] room={normalize_code(code)} player={player_id} remaining={room is not None}"
        )
        return room

    # ---- Game flow ----

    def _check_start(self, room, requester_id, template):
        if room is None:
            raise errors.RoomNotFound()
        if room.host_id != requester_id:
            raise errors.NotHost()
        if len(room.connected_players()) < self.min_players:
            raise errors.InsufficientPlayers(f'Need at least {self.min_players} players to start')
        if room.game_state != 'waiting':
            raise errors.AlreadyStarted()
        if template is None:
            raise errors.QuestionsExhausted()

    def start_game(self, code, requester_id) -> Room:
        code = normalize_code(code)
        room = self.rooms.find_by_code(code)
        template = self.questions.get_candidate(room.used_question_list()) if room else None
        self._check_start(room, requester_id, template)

        def open_first_round(fresh):
            # Joins are blocked once the guard claimed the row, so this is the final roster
            connected = fresh.connected_players()
            if len(connected) < self.min_players:
                raise errors.InsufficientPlayers(f'Need at least {self.min_players} players to start')
            fresh.total_rounds = len(connected)
            self._open_round(fresh, template)

        guard = self.rooms.room_guard(
            code,
            Room.game_state == 'waiting',
            Room.host_id == requester_id,
            game_state='answering',
            current_round=1,
        )
        started = self.rooms.conditional_update(code, guard, open_first_round)
        if started is None:
            self._check_start(self.rooms.find_by_code(code), requester_id, template)
            raise errors.AlreadyStarted()
        current_app.logger.info(
            f"[start] room={code} rounds={started.total_rounds} "
            f"target={started.current_round_record.target_player_id}"
        )
        return started

    def submit_answer(self, code, player_id, text) -> AnswerOutcome:
        code = normalize_code(code)
        text = str(text or '').strip()
        if not text or len(text) > self.max_answer_length:
            # Room, phase and player problems take precedence over the text itself
            player = self._diagnose_player_action(code, player_id, 'answering', errors.NotInAnsweringPhase)
            if player.has_answered:
                raise errors.AlreadyAnswered()
            if not text:
                raise errors.InvalidAnswer('Answer cannot be empty')
            raise errors.InvalidAnswer(f'Answer must be at most {self.max_answer_length} characters')

        def append_answer(room):
            player = room.get_player(player_id)
            room.current_round_record.answers.append(
                Answer(player_id=player_id, player_name=player.name, text=text)
            )

        guard = self.rooms.player_guard(
            code, player_id, Player.has_answered.is_(False), phase='answering', has_answered=True
        )
        room = self.rooms.conditional_update(code, guard, append_answer)
        if room is None:
            self._diagnose_player_action(code, player_id, 'answering', errors.NotInAnsweringPhase)
            raise errors.AlreadyAnswered()
        current_app.logger.info(f"[answer] room={code} player={player_id}")

        flipped = self._advance_if_all_answered(code)
        room = flipped or room
        return AnswerOutcome(room=room, player=room.get_player(player_id), phase_changed=flipped is not None)

    def _advance_if_all_answered(self, code):
        room = self.rooms.find_by_code(code)
        if room is None or room.game_state != 'answering' or not room.all_connected('has_answered'):
            return None

        def open_voting(fresh):
            for p in fresh.players:
                p.has_voted = False

        guard = self.rooms.room_guard(
            code,
            Room.game_state == 'answering',
            Room.current_round == room.current_round,
            game_state='voting',
        )
        flipped = self.rooms.conditional_update(code, guard, open_voting)
        if flipped is not None:
            current_app.logger.info(f"[phase] room={code} round={flipped.current_round} answering -> voting")
        return flipped

    def submit_vote(self, code, voter_id, voted_for_player_id) -> VoteOutcome:
        if voter_id == voted_for_player_id:
            raise errors.CannotVoteForSelf()
        code = normalize_code(code)

        current = db.select(Room.current_round).where(Room.code == code).scalar_subquery()
        target_answered = (
            db.select(Answer.id)
            .join(Round, Answer.round_id == Round.id)
            .where(Round.room_code == code, Round.number == current, Answer.player_id == voted_for_player_id)
            .exists()
        )

        def append_vote(room):
            room.current_round_record.votes.append(
                Vote(voter_id=voter_id, voted_for_player_id=voted_for_player_id)
            )

        guard = self.rooms.player_guard(
            code, voter_id, Player.has_voted.is_(False), target_answered, phase='voting', has_voted=True
        )
        room = self.rooms.conditional_update(code, guard, append_vote)
        if room is None:
            voter = self._diagnose_player_action(code, voter_id, 'voting', errors.NotInVotingPhase)
            if voter.has_voted:
                raise errors.AlreadyVoted()
            raise errors.InvalidVoteTarget()
        current_app.logger.info(f"[vote] room={code} voter={voter_id} for={voted_for_player_id}")

        outcome = self._advance_if_all_voted(code)
        if outcome is None:
            return VoteOutcome(room=room, player=room.get_player(voter_id))
        outcome.player = outcome.room.get_player(voter_id)
        return outcome

    def _advance_if_all_voted(self, code):
        room = self.rooms.find_by_code(code)
        if room is None or room.game_state != 'voting' or not room.all_connected('has_voted'):
            return None

        def score_round(fresh):
            tally = tally_votes(fresh.current_round_record.votes)
            for p in fresh.players:
                if tally.get(p.id):
                    # Rendered as score = score + n
                    p.score = Player.score + tally[p.id]

        guard = self.rooms.room_guard(
            code,
            Room.game_state == 'voting',
            Room.current_round == room.current_round,
            game_state='results',
        )
        scored = self.rooms.conditional_update(code, guard, score_round)
        if scored is None:
            return None
        results = round_results(scored)
        current_app.logger.info(f"[phase] room={code} round={scored.current_round} voting -> results")
        return VoteOutcome(room=scored, phase_changed=True, results=results, winners=round_winners(results))

    def mark_ready(self, code, player_id) -> ReadyOutcome:
        code = normalize_code(code)
        guard = self.rooms.player_guard(
            code, player_id, Player.is_ready.is_(False), phase='results', is_ready=True
        )
        if self.rooms.conditional_update(code, guard) is None:
            # Falls through when the player was already ready
            self._diagnose_player_action(code, player_id, 'results', errors.NotInResultsPhase)
        current_app.logger.info(f"[ready] room={code} player={player_id}")

        outcome = self._advance_if_all_ready(code)
        outcome.player = outcome.room.get_player(player_id)
        return outcome

    def _advance_if_all_ready(self, code) -> ReadyOutcome:
        room = self.rooms.find_by_code(code)
        if room is None:
            raise errors.RoomNotFound()
        if room.game_state != 'results' or not room.all_connected('is_ready'):
            return ReadyOutcome(room=room)

        observed = room.current_round
        if observed >= room.total_rounds:
            guard = self.rooms.room_guard(
                code,
                Room.game_state == 'results',
                Room.current_round == observed,
                game_state='finished',
            )
            finished = self.rooms.conditional_update(code, guard)
            if finished is None:
                return ReadyOutcome(room=self._require_room(code))
            try:
                self.questions.record_usage(finished.used_question_list())
            except Exception:
                current_app.logger.exception(f"[finish] room={code} failed to record question usage")
            scores = final_scores(finished.players)
            current_app.logger.info(f"[finish] room={code} finished at round={observed}")
            return ReadyOutcome(room=finished, advanced=True, game_over=True, final_scores=scores)

        template = self.questions.get_candidate(room.used_question_list())
        if template is None:
            raise errors.QuestionsExhausted()
        guard = self.rooms.room_guard(
            code,
            Room.game_state == 'results',
            Room.current_round == observed,
            game_state='answering',
            current_round=observed + 1,
        )
        opened = self.rooms.conditional_update(code, guard, lambda fresh: self._open_round(fresh, template))
        if opened is None:
            return ReadyOutcome(room=self._require_room(code))
        current_app.logger.info(
            f"[next_round] room={code} advance round {observed} -> {observed + 1} "
            f"target={opened.current_round_record.target_player_id}"
        )
        return ReadyOutcome(room=opened, advanced=True)

    def reset_game(self, code) -> Room:
        def clear(room):
            room.rounds = []
            for p in room.players:
                p.score = 0
            room.reset_round_flags()

        guard = self.rooms.room_guard(
            code, game_state='waiting', current_round=0, total_rounds=0, used_questions='[]'
        )
        room = self.rooms.conditional_update(code, guard, clear)
        if room is None:
            raise errors.RoomNotFound()
        current_app.logger.info(f"[reset] room={room.code}")
        return room

    def reconcile(self, code):
        """Advance the current phase if departed players were the only ones holding it back.

        Returns the outcome of the transition that happened, or None.
        """
        room = self.rooms.find_by_code(code)
        if room is None or not room.connected_players():
            return None
        if room.game_state == 'answering':
            flipped = self._advance_if_all_answered(code)
            return AnswerOutcome(room=flipped, phase_changed=True) if flipped else None
        if room.game_state == 'voting':
            return self._advance_if_all_voted(code)
        if room.game_state == 'results':
            outcome = self._advance_if_all_ready(code)
            return outcome if outcome.advanced else None
        return None

    # ---- Views ----

    def current_question(self, room) -> Optional[str]:
        record = room.current_round_record
        if record is None:
            return None
        return self.questions.format_for_player(record.question_template, record.target_player_name)

    def shuffled_answers_for(self, room, player_id) -> list:
        """Anonymous answers of the current round in a fresh random order, without the player's own."""
        record = room.current_round_record
        if record is None:
            return []
        answers = [
            {'player_id': a.player_id, 'text': a.text}
            for a in record.answers
            if a.player_id != player_id
        ]
        self._random.shuffle(answers)
        return answers

    def round_results(self, room) -> list:
        return round_results(room)

    def final_scores(self, room) -> list:
        return final_scores(room.players)
