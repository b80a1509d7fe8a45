"""
SQLAlchemy ORM Models for Scheduling Persistence

Defines ItemStateRecord, ReviewLogRecord and WeightSnapshotRecord.
Works against Postgres in production and SQLite in tests.
"""

from sqlalchemy import JSON, Column, DateTime, Float, Integer, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class ItemStateRecord(Base):
    """
    Persistent scheduling state for a single item (user_id + item_id).

    Long-term fields stay NULL until the item first graduates; the
    short-term field is NULL outside the learning phase.
    """
    __tablename__ = 'item_state'

    user_id = Column(String(255), primary_key=True, nullable=False)
    item_id = Column(String(255), primary_key=True, nullable=False)

    # Long-term memory parameters
    stability = Column(Float, nullable=True)  # Days until recall drops to 90%
    difficulty = Column(Float, nullable=True)  # 1-10

    # Learning phase
    short_stability_minutes = Column(Float, nullable=True)
    learning_review_count = Column(Integer, nullable=False, default=0)

    # Scheduling
    last_review = Column(DateTime(timezone=True), nullable=True)
    next_review = Column(DateTime(timezone=True), nullable=True)

    management_count = Column(Integer, nullable=False, default=0)
    review_count = Column(Integer, nullable=False, default=0)
    lapses = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<ItemStateRecord({self.user_id}, {self.item_id})>"


class ReviewLogRecord(Base):
    """
    Append-only log entry for a single rating.

    Column names follow the optimizer export schema where one exists.
    """
    __tablename__ = 'review_logs'

    id = Column(Integer, primary_key=True, autoincrement=True)

    user_id = Column(String(255), nullable=False, index=True)
    item_id = Column(String(255), nullable=False, index=True)

    review_time = Column(DateTime(timezone=True), nullable=False)
    rating = Column(Integer, nullable=False)  # 1=AGAIN, 2=HARD, 3=GOOD, 4=EASY
    review_duration_ms = Column(Integer, nullable=True)
    review_state = Column(Integer, nullable=False, default=0)  # 0 new, 1 learning, 2 review, 3 relearning

    elapsed_days = Column(Float, nullable=False)
    scheduled_days = Column(Float, nullable=False)

    # State before review
    stability_before = Column(Float, nullable=True)
    difficulty_before = Column(Float, nullable=True)
    short_stability_before = Column(Float, nullable=True)
    retrievability_before = Column(Float, nullable=True)

    # State after review
    stability_after = Column(Float, nullable=True)
    difficulty_after = Column(Float, nullable=True)
    short_stability_after = Column(Float, nullable=True)

    phase_before = Column(String(20), nullable=False)
    phase_after = Column(String(20), nullable=False)

    def __repr__(self):
        return f"<ReviewLogRecord(id={self.id}, {self.item_id}, rating={self.rating})>"


class WeightSnapshotRecord(Base):
    """Every installed weight vector, kept for audit and rollback."""
    __tablename__ = 'weight_snapshots'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, index=True)

    weights_version = Column(Integer, nullable=False)
    weights = Column(JSON, nullable=False)  # list of 21 floats
    target_retention = Column(Float, nullable=False)
    policy_version = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self):
        return f"<WeightSnapshotRecord({self.user_id}, v{self.weights_version})>"
