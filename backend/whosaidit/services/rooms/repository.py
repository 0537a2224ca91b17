import random
import string
from datetime import timedelta

from sqlalchemy.exc import IntegrityError

from whosaidit import db
from whosaidit.errors import CodeGenerationExhausted
from whosaidit.models import Room, Player, utcnow

CODE_ALPHABET = string.ascii_uppercase + string.digits

# Guards are executed without touching already-loaded objects; the room is
# reloaded afterwards.
_GUARD_OPTIONS = {'synchronize_session': False}


def normalize_code(code) -> str:
    return str(code or '').strip().upper()


class RoomRepository:
    """Room storage with compare-and-set style conditional updates.

    Every state change goes through :meth:`conditional_update`: a single
    guarded ``UPDATE`` decides whether the change may proceed, and the
    dependent writes run in the same transaction. Two callers racing on the
    same guard can never both succeed, because the second ``UPDATE`` no
    longer matches once the first one has been applied.
    """

    def __init__(self, code_length=6, max_code_attempts=10, ttl=timedelta(hours=24)):
        self.code_length = code_length
        self.max_code_attempts = max_code_attempts
        self.ttl = ttl

    # ---- Codes and creation ----

    def generate_code(self) -> str:
        return ''.join(random.choices(CODE_ALPHABET, k=self.code_length))

    def create(self, room: Room) -> Room:
        """Persist a new room under a fresh unique code."""
        for _ in range(self.max_code_attempts):
            code = self.generate_code()
            # Expired rows still occupy their code until purged
            if db.session.get(Room, code) is not None:
                continue
            now = utcnow()
            room.code = code
            room.created_at = now
            room.updated_at = now
            room.expires_at = now + self.ttl
            db.session.add(room)
            try:
                db.session.commit()
            except IntegrityError:
                db.session.rollback()
                continue
            return room
        raise CodeGenerationExhausted()

    # ---- Reads ----

    def find_by_code(self, code):
        code = normalize_code(code)
        if not code:
            return None
        return Room.query.filter(Room.code == code, Room.expires_at > utcnow()).first()

    # ---- Guards ----

    def room_guard(self, code, *criteria, **values):
        """Guarded UPDATE of the room row; ``criteria`` must all hold for it to match."""
        values.setdefault('updated_at', utcnow())
        return (
            db.update(Room)
            .where(Room.code == normalize_code(code), Room.expires_at > utcnow(), *criteria)
            .values(**values)
        )

    def player_guard(self, code, player_id, *criteria, phase=None, **values):
        """Guarded UPDATE of one player row, optionally requiring the room to be in ``phase``."""
        live_room = db.select(Room.code).where(Room.code == normalize_code(code), Room.expires_at > utcnow())
        if phase is not None:
            live_room = live_room.where(Room.game_state == phase)
        return (
            db.update(Player)
            .where(Player.room_code.in_(live_room), Player.id == player_id, *criteria)
            .values(**values)
        )

    def conditional_update(self, code, guard, mutation=None):
        """Apply ``guard``; when it claims exactly one row run ``mutation(room)`` and commit.

        Returns the updated room, or None when the guard matched nothing. In
        that case nothing is written and the caller is expected to re-read
        the room to work out why.
        """
        code = normalize_code(code)
        try:
            result = db.session.execute(guard, execution_options=_GUARD_OPTIONS)
            if result.rowcount != 1:
                db.session.rollback()
                return None
            db.session.expire_all()
            room = db.session.get(Room, code)
            if mutation is not None:
                mutation(room)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return room

    # ---- Connections ----

    def attach_connection(self, code, player_id, connection_ref):
        guard = self.player_guard(code, player_id, connection_ref=connection_ref, is_connected=True)
        return self.conditional_update(code, guard)

    def detach_connection(self, code, player_id, connection_ref):
        """Mark the player disconnected, unless a newer connection already replaced ``connection_ref``."""
        guard = self.player_guard(
            code, player_id, Player.connection_ref == connection_ref,
            connection_ref=None, is_connected=False,
        )
        return self.conditional_update(code, guard)

    def mark_connected(self, code, player_id):
        return self.conditional_update(code, self.player_guard(code, player_id, is_connected=True))

    def remove_player(self, code, player_id):
        """Remove a player before the game starts, otherwise only mark them disconnected.

        Returns the remaining room, or None when the room is gone (missing or
        deleted because its last player left).
        """
        code = normalize_code(code)
        waiting = db.select(Room.code).where(Room.code == code, Room.game_state == 'waiting')
        try:
            result = db.session.execute(
                db.delete(Player).where(Player.id == player_id, Player.room_code.in_(waiting)),
                execution_options=_GUARD_OPTIONS,
            )
            if result.rowcount == 1:
                db.session.expire_all()
                room = db.session.get(Room, code)
                if not room.players:
                    db.session.delete(room)
                    db.session.commit()
                    return None
                if room.host_id == player_id:
                    room.host_id = room.players[0].id
                db.session.commit()
                return room
            db.session.rollback()
        except Exception:
            db.session.rollback()
            raise
        guard = self.player_guard(code, player_id, connection_ref=None, is_connected=False)
        return self.conditional_update(code, guard) or self.find_by_code(code)

    # ---- Deletion ----

    def delete(self, code) -> bool:
        room = db.session.get(Room, normalize_code(code))
        if room is None:
            return False
        db.session.delete(room)
        db.session.commit()
        return True

    def purge_expired(self, now=None) -> int:
        now = now or utcnow()
        expired = Room.query.filter(Room.expires_at <= now).all()
        for room in expired:
            db.session.delete(room)
        db.session.commit()
        return len(expired)
