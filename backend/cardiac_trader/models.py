from cardiac_trader import db
import time


class CachedSession(db.Model):
    """Last known game session per user, so a reload can pick the game back up."""
    __tablename__ = 'cached_session'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), unique=True, nullable=False, index=True)
    session_id = db.Column(db.String(64), nullable=False, index=True)
    difficulty_level = db.Column(db.String(16), nullable=True)  # EASY, MEDIUM, HARD
    status = db.Column(db.String(32), default='ACTIVE')  # ACTIVE, COMPLETED, ABANDONED
    current_round = db.Column(db.Integer, default=1)
    starting_capital = db.Column(db.Float, nullable=True)
    current_capital = db.Column(db.Float, nullable=True)
    updated_at = db.Column(db.Float, nullable=True)

    def to_dict(self):
        return {
            'id': self.session_id,
            'user_id': self.user_id,
            'current_round': self.current_round,
            'starting_capital': self.starting_capital,
            'current_capital': self.current_capital,
            'status': self.status,
            'difficulty_level': self.difficulty_level,
            'cached': True,
            'updated_at': self.updated_at,
        }


def cache_game_session(session) -> CachedSession:
    """Insert or refresh the cached row for ``session`` (a GameSession)."""
    row = CachedSession.query.filter_by(user_id=session.user_id).first()
    if row is None:
        row = CachedSession(user_id=session.user_id)
    row.session_id = session.id
    row.difficulty_level = session.difficulty_level
    row.status = session.status
    row.current_round = session.current_round
    row.starting_capital = session.starting_capital
    row.current_capital = session.current_capital
    row.updated_at = time.time()
    db.session.add(row)
    db.session.commit()
    return row


def clear_cached_session(session_id: str) -> int:
    try:
        removed = CachedSession.query.filter_by(session_id=session_id).delete()
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return removed
