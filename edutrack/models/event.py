# SQLAlchemy models

from sqlalchemy import Column, String, DateTime, JSON, Index, ForeignKey, func
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String, unique=True, nullable=True)
    name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class TrackingEventRecord(Base):
    __tablename__ = "tracking_events"

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    session_id = Column(String, nullable=False, index=True)
    event_category = Column(String, nullable=False)
    event_type = Column(String, nullable=False, index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    course_id = Column(String, nullable=True)
    module_id = Column(String, nullable=True)
    lesson_id = Column(String, nullable=True)
    course_version = Column(String, nullable=True)
    content_type = Column(String, nullable=True)
    source = Column(String, nullable=False)
    user_agent = Column(String, nullable=True)
    ip_address = Column(String, nullable=True)
    # "metadata" is reserved on declarative classes
    event_metadata = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index('idx_tracking_user_timestamp', 'user_id', 'timestamp'),
        Index('idx_tracking_category_type', 'event_category', 'event_type'),
    )


class AnonymousTrackingProfile(Base):
    __tablename__ = "anonymous_tracking_profiles"

    id = Column(String, primary_key=True)
    anonymous_id = Column(String, unique=True, nullable=False)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    profile_metadata = Column("metadata", JSON, nullable=False, default=dict)
    first_seen = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_seen = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
