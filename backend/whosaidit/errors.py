"""Error taxonomy for room and game operations.

Every failure of an engine operation is raised as a ``GameError`` subclass.
The category base classes decide how a client should react and which HTTP
status the REST layer answers with; ``code`` is the stable identifier sent
to clients.
"""


class GameError(Exception):
    code = 'game_error'
    status = 400
    message = 'Game error'

    def __init__(self, message=None):
        super().__init__(message or self.message)

    def to_dict(self):
        return {'code': self.code, 'error': str(self)}


# ---- Categories ----

class NotFoundError(GameError):
    """Room or player is gone; the client should abandon its session."""
    status = 404


class PreconditionFailedError(GameError):
    """Wrong phase or action already applied; the client should refresh state."""
    status = 409


class ValidationError(GameError):
    """Client-correctable input problem."""
    status = 400


class ResourceExhaustedError(GameError):
    """Operator-visible exhaustion (codes, questions)."""
    status = 503


# ---- Not found ----

class RoomNotFound(NotFoundError):
    code = 'room_not_found'
    message = 'Room not found'


class PlayerNotFound(NotFoundError):
    code = 'player_not_found'
    message = 'Player not found'


# ---- Preconditions ----

class NotHost(PreconditionFailedError):
    code = 'not_host'
    status = 403
    message = 'Only the host can start the game'


class InsufficientPlayers(PreconditionFailedError):
    code = 'insufficient_players'
    message = 'Not enough connected players to start'


class AlreadyStarted(PreconditionFailedError):
    code = 'already_started'
    message = 'Game has already started'


class NotInAnsweringPhase(PreconditionFailedError):
    code = 'not_in_answering_phase'
    message = 'Not in answering phase'


class NotInVotingPhase(PreconditionFailedError):
    code = 'not_in_voting_phase'
    message = 'Not in voting phase'


class NotInResultsPhase(PreconditionFailedError):
    code = 'not_in_results_phase'
    message = 'Not in results phase'


class AlreadyAnswered(PreconditionFailedError):
    code = 'already_answered'
    message = 'Already answered'


class AlreadyVoted(PreconditionFailedError):
    code = 'already_voted'
    message = 'Already voted'


class NameAlreadyTaken(PreconditionFailedError):
    code = 'name_already_taken'
    message = 'A player with this name already exists in the room'


# ---- Validation ----

class CannotVoteForSelf(ValidationError):
    code = 'cannot_vote_for_self'
    message = 'Cannot vote for your own answer'


class InvalidVoteTarget(ValidationError):
    code = 'invalid_vote_target'
    message = 'Invalid vote target'


class InvalidName(ValidationError):
    code = 'invalid_name'
    message = 'Invalid player name'


class InvalidRoomCode(ValidationError):
    code = 'invalid_room_code'
    message = 'Invalid room code'


class InvalidAnswer(ValidationError):
    code = 'invalid_answer'
    message = 'Invalid answer'


class InvalidPayload(ValidationError):
    code = 'invalid_payload'
    message = 'Malformed request payload'


# ---- Exhaustion ----

class CodeGenerationExhausted(ResourceExhaustedError):
    code = 'code_generation_exhausted'
    message = 'Failed to generate unique room code'


class QuestionsExhausted(ResourceExhaustedError):
    code = 'questions_exhausted'
    message = 'No questions available'
