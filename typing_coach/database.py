import logging
import os

from sqlalchemy import create_engine
from sqlalchemy.exc import DatabaseError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from typing_coach import config
from typing_coach.models import Base, KeystrokeRecord, PracticeSession
from typing_coach.records import Keystroke, PerformanceRecord, Position

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Session history sink: completed sessions in, performance records out"""

    def __init__(self, db_path=config.DB_PATH):
        self.db_path = str(db_path)
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self.engine = create_engine(f'sqlite:///{self.db_path}')

        try:
            Base.metadata.create_all(self.engine)
        except DatabaseError:
            logger.error("Database at %s appears to be corrupt; recreating it", self.db_path, exc_info=True)

            # Release pooled connections before deleting the file
            self.engine.dispose()

            if os.path.exists(self.db_path):
                os.remove(self.db_path)

            self.engine = create_engine(f'sqlite:///{self.db_path}')
            Base.metadata.create_all(self.engine)
            logger.error("Recovered: new database created at %s", self.db_path)

        self.Session = sessionmaker(bind=self.engine)

    def get_session(self):
        return self.Session()

    def save_session(self, session, level_id=None):
        """Store a completed TypingSession with its keystrokes; returns its id.

        level_id is the difficulty level active while the session was practised.
        """
        if session is None:
            return None

        db_session = self.get_session()
        try:
            db_session.add(PracticeSession(
                session_id=session.id,
                drill_type=session.drill_type if isinstance(session.drill_type, str) else None,
                target_wpm=session.target_wpm,
                final_wpm=session.final_wpm,
                accuracy_raw=session.accuracy.raw,
                accuracy_adjusted=session.accuracy.adjusted,
                error_rate=session.accuracy.error_rate,
                correction_ratio=session.accuracy.correction_ratio,
                consistency=session.stats.consistency,
                error_count=session.stats.error_count,
                correction_count=session.stats.correction_count,
                error_patterns=dict(session.stats.error_patterns),
                started_at_ms=session.start_time,
                ended_at_ms=session.end_time,
                paused_intervals=[list(interval) for interval in session.paused_intervals],
                level_id=level_id if isinstance(level_id, str) else None,
            ))
            for sequence, keystroke in enumerate(session.keystrokes):
                position = keystroke.position
                db_session.add(KeystrokeRecord(
                    session_id=session.id,
                    sequence=sequence,
                    key=keystroke.key,
                    expected=keystroke.expected,
                    is_correct=keystroke.is_correct,
                    line_no=position.line if position else None,
                    column_no=position.column if position else None,
                    timestamp_ms=keystroke.timestamp,
                    time_delta=keystroke.time_delta,
                ))
            db_session.commit()
        except SQLAlchemyError:
            db_session.rollback()
            logger.error("Failed to save session %s", session.id)
            raise
        finally:
            db_session.close()

        logger.info("Saved session %s (%d keystrokes)", session.id, len(session.keystrokes))
        return session.id

    def get_keystrokes(self, session_id):
        db_session = self.get_session()
        rows = db_session.query(KeystrokeRecord).filter_by(
            session_id=session_id
        ).order_by(KeystrokeRecord.sequence).all()
        db_session.close()

        return [Keystroke(
            key=row.key,
            expected=row.expected,
            position=Position(row.line_no, row.column_no) if row.line_no is not None and row.column_no is not None else None,
            timestamp=row.timestamp_ms,
            is_correct=row.is_correct,
            time_delta=row.time_delta,
        ) for row in rows]

    def get_session_history(self, limit=None, include_keystrokes=False):
        """Most recent sessions as PerformanceRecords, oldest first"""
        db_session = self.get_session()
        query = db_session.query(PracticeSession).order_by(PracticeSession.id.desc())
        if limit:
            query = query.limit(limit)
        rows = query.all()
        db_session.close()

        history = []
        for row in reversed(rows):
            history.append(PerformanceRecord(
                drill_type=row.drill_type,
                final_wpm=row.final_wpm,
                accuracy_raw=row.accuracy_raw,
                accuracy_adjusted=row.accuracy_adjusted,
                error_rate=row.error_rate,
                correction_ratio=row.correction_ratio,
                consistency=row.consistency,
                keystrokes=self.get_keystrokes(row.session_id) if include_keystrokes else [],
                session_id=row.session_id,
                level_id=row.level_id,
            ))
        return history

    def clear_history(self):
        db_session = self.get_session()
        try:
            db_session.query(KeystrokeRecord).delete()
            db_session.query(PracticeSession).delete()
            db_session.commit()
        except SQLAlchemyError:
            db_session.rollback()
            raise
        finally:
            db_session.close()


def load_history_into(adaptive, db_manager, limit=config.HISTORY_LIMIT, include_keystrokes=True):
    """Replay stored sessions into an AdaptiveDifficulty instance; returns how many"""
    history = db_manager.get_session_history(limit=limit, include_keystrokes=include_keystrokes)
    for record in history:
        adaptive.add_session(record)
    return len(history)
