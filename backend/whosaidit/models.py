from whosaidit import db
from datetime import datetime, timezone
import json

GAME_STATES = ('waiting', 'answering', 'voting', 'results', 'finished')

# Flags cleared on every round transition
ROUND_FLAGS = ('has_answered', 'has_voted', 'is_ready')


def utcnow():
    """Naive UTC timestamp, matching how the columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() + 'Z' if value else None


class Room(db.Model):
    __tablename__ = 'room'
    code = db.Column(db.String(16), primary_key=True)
    host_id = db.Column(db.String(36), nullable=False)
    game_state = db.Column(db.String(16), nullable=False, default='waiting')  # waiting, answering, voting, results, finished
    current_round = db.Column(db.Integer, nullable=False, default=0)
    total_rounds = db.Column(db.Integer, nullable=False, default=0)
    used_questions = db.Column(db.Text, nullable=False, default='[]')  # JSON-encoded list of templates
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)
    players = db.relationship(
        'Player', back_populates='room', order_by='Player.join_order',
        cascade='all, delete-orphan',
    )
    rounds = db.relationship(
        'Round', back_populates='room', order_by='Round.number',
        cascade='all, delete-orphan',
    )

    def get_player(self, player_id):
        for p in self.players:
            if p.id == player_id:
                return p
        return None

    def connected_players(self):
        return [p for p in self.players if p.is_connected]

    def all_connected(self, flag):
        """True when at least one player is connected and every connected one has ``flag`` set."""
        connected = self.connected_players()
        return bool(connected) and all(getattr(p, flag) for p in connected)

    @property
    def current_round_record(self):
        if 0 < (self.current_round or 0) <= len(self.rounds):
            return self.rounds[self.current_round - 1]
        return None

    def used_question_list(self):
        try:
            return list(json.loads(self.used_questions or '[]'))
        except ValueError:
            return []

    def add_used_question(self, template):
        used = self.used_question_list()
        if template not in used:
            used.append(template)
        self.used_questions = json.dumps(used)

    def reset_round_flags(self):
        for p in self.players:
            for flag in ROUND_FLAGS:
                setattr(p, flag, False)

    def to_dict(self):
        # Authorship of the round in play stays hidden until results are shown
        reveal_current = self.game_state in ('results', 'finished')
        return {
            'code': self.code,
            'host_id': self.host_id,
            'game_state': self.game_state,
            'current_round': self.current_round,
            'total_rounds': self.total_rounds,
            'players': [p.to_dict() for p in self.players],
            'rounds': [
                r.to_dict(reveal=reveal_current or r.number != self.current_round)
                for r in self.rounds
            ],
            'used_questions': self.used_question_list(),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
            'expires_at': _iso(self.expires_at),
        }


class Player(db.Model):
    __tablename__ = 'player'
    id = db.Column(db.String(36), primary_key=True)
    room_code = db.Column(db.String(16), db.ForeignKey('room.code', ondelete='CASCADE'), nullable=False, index=True)
    name = db.Column(db.String(64), nullable=False)
    score = db.Column(db.Integer, nullable=False, default=0)
    join_order = db.Column(db.Integer, nullable=False, default=0)
    connection_ref = db.Column(db.String(64), nullable=True)
    is_connected = db.Column(db.Boolean, nullable=False, default=True)
    has_answered = db.Column(db.Boolean, nullable=False, default=False)
    has_voted = db.Column(db.Boolean, nullable=False, default=False)
    is_ready = db.Column(db.Boolean, nullable=False, default=False)
    room = db.relationship('Room', back_populates='players')

    def to_dict(self):
        # connection_ref is transport-private
        return {
            'id': self.id,
            'name': self.name,
            'score': self.score,
            'is_connected': self.is_connected,
            'has_answered': self.has_answered,
            'has_voted': self.has_voted,
            'is_ready': self.is_ready,
        }


class Round(db.Model):
    __tablename__ = 'round'
    __table_args__ = (db.UniqueConstraint('room_code', 'number', name='uq_round_room_number'),)
    id = db.Column(db.Integer, primary_key=True)
    room_code = db.Column(db.String(16), db.ForeignKey('room.code', ondelete='CASCADE'), nullable=False, index=True)
    number = db.Column(db.Integer, nullable=False)
    question_template = db.Column(db.Text, nullable=False)
    target_player_id = db.Column(db.String(36), nullable=False)
    target_player_name = db.Column(db.String(64), nullable=False)
    room = db.relationship('Room', back_populates='rounds')
    answers = db.relationship(
        'Answer', back_populates='round', order_by='Answer.id',
        cascade='all, delete-orphan',
    )
    votes = db.relationship(
        'Vote', back_populates='round', order_by='Vote.id',
        cascade='all, delete-orphan',
    )

    def answer_by(self, player_id):
        for a in self.answers:
            if a.player_id == player_id:
                return a
        return None

    def to_dict(self, reveal=True):
        data = {
            'number': self.number,
            'question_template': self.question_template,
            'target_player_id': self.target_player_id,
            'target_player_name': self.target_player_name,
            'answer_count': len(self.answers),
            'vote_count': len(self.votes),
        }
        if reveal:
            data['answers'] = [a.to_dict() for a in self.answers]
            data['votes'] = [v.to_dict() for v in self.votes]
        return data


class Answer(db.Model):
    __tablename__ = 'answer'
    __table_args__ = (db.UniqueConstraint('round_id', 'player_id', name='uq_answer_round_player'),)
    id = db.Column(db.Integer, primary_key=True)
    round_id = db.Column(db.Integer, db.ForeignKey('round.id', ondelete='CASCADE'), nullable=False, index=True)
    player_id = db.Column(db.String(36), nullable=False)
    player_name = db.Column(db.String(64), nullable=False)
    text = db.Column(db.Text, nullable=False)
    round = db.relationship('Round', back_populates='answers')

    def to_dict(self):
        return {
            'player_id': self.player_id,
            'player_name': self.player_name,
            'text': self.text,
        }


class Vote(db.Model):
    __tablename__ = 'vote'
    __table_args__ = (db.UniqueConstraint('round_id', 'voter_id', name='uq_vote_round_voter'),)
    id = db.Column(db.Integer, primary_key=True)
    round_id = db.Column(db.Integer, db.ForeignKey('round.id', ondelete='CASCADE'), nullable=False, index=True)
    voter_id = db.Column(db.String(36), nullable=False)
    voted_for_player_id = db.Column(db.String(36), nullable=False)
    round = db.relationship('Round', back_populates='votes')

    def to_dict(self):
        return {
            'voter_id': self.voter_id,
            'voted_for_player_id': self.voted_for_player_id,
        }


class Question(db.Model):
    __tablename__ = 'question'
    id = db.Column(db.Integer, primary_key=True)
    template = db.Column(db.Text, unique=True, nullable=False)
    category = db.Column(db.String(64), nullable=False, default='general')
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    usage_count = db.Column(db.Integer, nullable=False, default=0, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'template': self.template,
            'category': self.category,
            'is_active': self.is_active,
            'usage_count': self.usage_count,
        }
