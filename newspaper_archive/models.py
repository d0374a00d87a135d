"""SQLAlchemy models."""

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Boolean, Column, Date, DateTime, ForeignKey, Integer, BigInteger,
    String, Text, JSON, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship

from .database import Base


class IssueStatus(str, Enum):
    """Coarse issue lifecycle status."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobStatus(str, Enum):
    """Extraction job states."""
    PENDING = "pending"
    SCRAPING = "scraping"
    DOWNLOADING = "downloading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class ImageStatus(str, Enum):
    """Page image download status."""
    PENDING = "pending"
    DOWNLOADED = "downloaded"
    FAILED = "failed"


ACTIVE_JOB_STATUSES = (
    JobStatus.PENDING.value,
    JobStatus.SCRAPING.value,
    JobStatus.DOWNLOADING.value,
    JobStatus.PROCESSING.value,
)


class NewspaperIssue(Base):
    """One published monthly edition."""
    __tablename__ = "newspaper_issues"

    id = Column(Integer, primary_key=True, index=True)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    board_id = Column(Integer, nullable=False)
    url = Column(Text, nullable=False)
    title = Column(Text)
    published_date = Column(Date)
    image_count = Column(Integer, default=0)
    status = Column(String(50), default=IssueStatus.PENDING.value, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    images = relationship("NewspaperImage", back_populates="issue", cascade="all, delete-orphan")
    articles = relationship("Article", back_populates="issue", cascade="all, delete-orphan")
    jobs = relationship("ExtractionJob", back_populates="issue", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint('year', 'month', name='unique_issue_year_month'),
    )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'year': self.year,
            'month': self.month,
            'board_id': self.board_id,
            'url': self.url,
            'title': self.title,
            'published_date': self.published_date.isoformat() if self.published_date else None,
            'image_count': self.image_count,
            'status': self.status,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class NewspaperImage(Base):
    """One scanned page belonging to an issue."""
    __tablename__ = "newspaper_images"

    id = Column(Integer, primary_key=True, index=True)
    issue_id = Column(Integer, ForeignKey("newspaper_issues.id", ondelete="CASCADE"), nullable=False, index=True)
    image_url = Column(Text, nullable=False)
    local_path = Column(Text)
    page_number = Column(Integer)
    file_name = Column(Text)
    file_size = Column(BigInteger)
    mime_type = Column(String(100))
    status = Column(String(50), default=ImageStatus.PENDING.value)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    issue = relationship("NewspaperIssue", back_populates="images")

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'issue_id': self.issue_id,
            'image_url': self.image_url,
            'local_path': self.local_path,
            'page_number': self.page_number,
            'file_name': self.file_name,
            'file_size': self.file_size,
            'mime_type': self.mime_type,
            'status': self.status,
        }


class ExtractionJob(Base):
    """One attempt to extract an issue."""
    __tablename__ = "extraction_jobs"

    id = Column(Integer, primary_key=True, index=True)
    issue_id = Column(Integer, ForeignKey("newspaper_issues.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(50), default=JobStatus.PENDING.value, nullable=False)
    progress = Column(Integer, default=0)  # 0-100
    total_items = Column(Integer, default=0)
    processed_items = Column(Integer, default=0)
    error_message = Column(Text)
    started_at = Column(DateTime)
    completed_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    issue = relationship("NewspaperIssue", back_populates="jobs")


class Article(Base):
    """AI-derived article extracted from a single page image."""
    __tablename__ = "articles"

    id = Column(Integer, primary_key=True, index=True)
    issue_id = Column(Integer, ForeignKey("newspaper_issues.id", ondelete="CASCADE"), nullable=False)
    image_id = Column(Integer, ForeignKey("newspaper_images.id", ondelete="SET NULL"))
    page_number = Column(Integer, nullable=False)
    title = Column(Text)
    content_summary = Column(Text)
    full_content = Column(Text)
    article_type = Column(String(100))  # 행사, 간증, 선교, 말씀, 컬럼 ...
    author = Column(Text)
    extracted_at = Column(DateTime, default=datetime.utcnow)
    # "metadata" is reserved on declarative classes
    article_metadata = Column("metadata", JSON, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    issue = relationship("NewspaperIssue", back_populates="articles")
    events = relationship("Event", back_populates="article", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_articles_issue_id', 'issue_id'),
        Index('idx_articles_page_number', 'page_number'),
        Index('idx_articles_article_type', 'article_type'),
    )


class Event(Base):
    """Dated occurrence mentioned within an article."""
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    article_id = Column(Integer, ForeignKey("articles.id", ondelete="CASCADE"), nullable=False)
    event_type = Column(String(100))
    event_date = Column(Date)
    event_title = Column(Text)
    description = Column(Text)
    location = Column(Text)
    participants = Column(JSON, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    article = relationship("Article", back_populates="events")

    __table_args__ = (
        Index('idx_events_event_date', 'event_date'),
        Index('idx_events_event_type', 'event_type'),
    )


class ApiKey(Base):
    """Stored AI provider credential."""
    __tablename__ = "api_keys"

    id = Column(Integer, primary_key=True, index=True)
    provider = Column(String(50), nullable=False, unique=True)
    api_key = Column(Text, nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
