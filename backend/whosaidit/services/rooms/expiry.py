import time

from whosaidit import socketio


_sweeper_started = set()


def start_expiry_sweeper(app) -> bool:
    """Start the background task that purges expired rooms.

    - No-ops in TESTING mode or when ROOM_SWEEP_INTERVAL_SEC is 0
    - Ensures a single sweeper per application
    """
    interval = int(app.config.get('ROOM_SWEEP_INTERVAL_SEC', 0))
    if app.config.get('TESTING') or interval <= 0:
        return False
    if id(app) in _sweeper_started:
        return False
    _sweeper_started.add(id(app))

    def _worker():
        while True:
            time.sleep(interval)
            with app.app_context():
                try:
                    purged = sweep_expired_rooms(app)
                except Exception:
                    app.logger.exception("[sweep] failed to purge expired rooms")
                    continue
                if purged:
                    app.logger.info(f"[sweep] purged {purged} expired room(s)")

    socketio.start_background_task(_worker)
    app.logger.info(f"[sweep] expiry sweeper started interval={interval}s")
    return True


def sweep_expired_rooms(app) -> int:
    from whosaidit.services import ENGINE_KEY
    return app.extensions[ENGINE_KEY].rooms.purge_expired()
