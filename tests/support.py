"""
Shared test models and helpers.

Provides: Article/Comment test models, a model without delta columns,
FakeClock and index definition factories
System role: Test domain for indexing tests
"""

import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship, selectinload

from deltasearch.boundary.db.base import Base, DeltaIndexedMixin, TimestampMixin, UUIDMixin
from deltasearch.core.indexing.definitions import (
    AttributeSpec,
    DeltaStrategy,
    DependencySpec,
    FieldSpec,
    IndexDefinition,
)

EPOCH = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock advanced by hand."""

    def __init__(self, start: datetime = EPOCH) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class Article(Base, UUIDMixin, TimestampMixin, DeltaIndexedMixin):
    """Indexed test record."""

    __tablename__ = "test_articles"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    author: Mapped[str] = mapped_column(String(64), nullable=False, default="anon")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="published")

    comments: Mapped[list["Comment"]] = relationship(
        back_populates="article",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class Comment(Base, UUIDMixin, TimestampMixin):
    """Dependency of the article index."""

    __tablename__ = "test_comments"

    article_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("test_articles.id"),
        nullable=False,
    )
    body: Mapped[str] = mapped_column(Text, nullable=False)

    article: Mapped[Article] = relationship(back_populates="comments")


class PlainNote(Base, UUIDMixin, TimestampMixin):
    """Model without delta marker columns."""

    __tablename__ = "test_plain_notes"

    text: Mapped[str] = mapped_column(Text, nullable=False)


def article_index(
    strategy: DeltaStrategy = DeltaStrategy.SYNCHRONOUS,
    threshold: timedelta | None = None,
    name: str = "articles",
    with_comments: bool = False,
) -> IndexDefinition:
    """Article index definition; with_comments adds the comment dependency."""
    fields = [FieldSpec(name="title", weight=2.0), FieldSpec(name="body")]
    dependencies = []
    if with_comments:
        fields.append(
            FieldSpec(name="comments", source=lambda a: [c.body for c in a.comments])
        )
        dependencies.append(DependencySpec(model=Comment, owner_id="article_id"))
    return IndexDefinition(
        name=name,
        model=Article,
        fields=fields,
        attributes=[AttributeSpec(name="author"), AttributeSpec(name="status")],
        strategy=strategy,
        threshold=threshold,
        dependencies=dependencies,
        load_options=(selectinload(Article.comments),),
    )
