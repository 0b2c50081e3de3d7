from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.sql import func

from .database import Base

EMBEDDING_DIMENSIONS = 768
SENTIMENTS = ("positive", "negative", "neutral")


class Article(Base):
    __tablename__ = "news"

    # Ids come from the news feed, never from a sequence
    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=False)

    # Raw fields, written once on first insert
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=False)
    thumbnail = Column(Text, nullable=False, default="")
    published_at = Column(DateTime(timezone=True), nullable=True)
    source = Column(String(255), nullable=False, default="")
    tags = Column(JSON, nullable=False)
    url = Column(Text, nullable=True)

    # Enrichment fields, null until the model service succeeds
    summary = Column(Text, nullable=True)
    sentiment = Column(String(16), nullable=True)
    embedding = Column(Vector(EMBEDDING_DIMENSIONS).with_variant(JSON(none_as_null=True), "sqlite"), nullable=True)

    views = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "sentiment IS NULL OR sentiment IN ('positive', 'negative', 'neutral')",
            name="ck_news_sentiment"
        ),
        Index("ix_news_published_at", "published_at"),
    )

    def __repr__(self) -> str:
        return f"Article(id={self.id}, title={self.title!r}, sentiment={self.sentiment})"
