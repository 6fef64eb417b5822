"""
Index definitions.

Typed, declarative per-model index configuration: which fields are
searchable, which values are filterable, how changes are picked up and
which related models feed the index.

Dependencies: pydantic, sqlalchemy
System role: Index configuration structures
"""

import enum
import uuid
from datetime import date, datetime, timedelta
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import inspect as sa_inspect

from deltasearch.boundary.db.base import as_utc, utcnow
from deltasearch.boundary.search.segment import SegmentDocument
from deltasearch.core.exceptions import IndexConfigurationError

Source = str | Callable[[Any], Any]
Clock = Callable[[], datetime]

DIRTY_COLUMNS = ("delta", "delta_marked_at")
REQUIRED_COLUMNS = ("id", "updated_at")


class DeltaStrategy(str, enum.Enum):
    """
    How changes to an index's records reach the search index.

    NONE: Core rebuilds only
    SYNCHRONOUS: Delta build runs inline when the mutation commits
    DATETIME: Threshold poller builds deltas from markers older than the threshold
    DELAYED: Mutation commit enqueues a delta job for the worker
    """

    NONE = "none"
    SYNCHRONOUS = "synchronous"
    DATETIME = "datetime"
    DELAYED = "delayed"


def resolve_source(record: Any, source: Source) -> Any:
    """Read a value from a record by dotted attribute path or callable."""
    if callable(source):
        return source(record)
    value = record
    for part in source.split("."):
        if value is None:
            return None
        value = getattr(value, part)
    return value


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple, set, frozenset)):
        return "\n".join(_as_text(item) for item in value if item is not None)
    return str(value)


def _as_attribute(value: Any) -> Any:
    """Convert attribute values to JSON-safe scalars."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_as_attribute(item) for item in value]
    return str(value)


class FieldSpec(BaseModel):
    """Full-text field. source defaults to the attribute named like the field."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str = Field(min_length=1)
    source: Source | None = None
    weight: float = Field(default=1.0, gt=0)

    def extract(self, record: Any) -> str:
        return _as_text(resolve_source(record, self.source or self.name))


class AttributeSpec(BaseModel):
    """Filterable scalar value stored alongside documents."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str = Field(min_length=1)
    source: Source | None = None

    def extract(self, record: Any) -> Any:
        return _as_attribute(resolve_source(record, self.source or self.name))


class DependencySpec(BaseModel):
    """
    Related model whose changes must re-index the owning records.

    owner_id reads, from the related record, the id (or ids) of the
    indexed records it contributes to, e.g. Comment.article_id.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    model: type[Any]
    owner_id: Source

    def owner_ids(self, record: Any) -> list[Any]:
        value = resolve_source(record, self.owner_id)
        if value is None:
            return []
        if isinstance(value, (list, tuple, set, frozenset)):
            return [item for item in value if item is not None]
        return [value]


class IndexDefinition(BaseModel):
    """
    Declarative index configuration for one SQLAlchemy model.

    Plain strings in fields and attributes are shorthand for specs whose
    source is the attribute of the same name.

    Usage:
        IndexDefinition(
            name="articles",
            model=Article,
            fields=[FieldSpec(name="title", weight=2.0), "body"],
            attributes=["author_id"],
            strategy=DeltaStrategy.DELAYED,
            dependencies=[DependencySpec(model=Comment, owner_id="article_id")],
        )
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str = Field(pattern=r"^[a-z0-9_]+$")
    model: type[Any]
    fields: list[FieldSpec] = Field(min_length=1)
    attributes: list[AttributeSpec] = Field(default_factory=list)
    strategy: DeltaStrategy = DeltaStrategy.SYNCHRONOUS
    threshold: timedelta | None = None
    dependencies: list[DependencySpec] = Field(default_factory=list)
    load_options: tuple[Any, ...] = ()

    @field_validator("fields", mode="before")
    @classmethod
    def _coerce_fields(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return [FieldSpec(name=item) if isinstance(item, str) else item for item in value]
        return value

    @field_validator("attributes", mode="before")
    @classmethod
    def _coerce_attributes(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return [AttributeSpec(name=item) if isinstance(item, str) else item for item in value]
        return value

    @property
    def tracks_changes(self) -> bool:
        """Whether mutations mark this index's records dirty."""
        return self.strategy != DeltaStrategy.NONE

    def field_weights(self) -> dict[str, float]:
        return {spec.name: spec.weight for spec in self.fields}

    def record_id(self, record: Any) -> str:
        return str(record.id)

    def document(self, record: Any) -> SegmentDocument:
        """
        Extract the segment document for one record.

        Args:
            record: Instance of the indexed model

        Returns:
            SegmentDocument: Field texts, attributes and version
        """
        return SegmentDocument(
            id=self.record_id(record),
            fields={spec.name: spec.extract(record) for spec in self.fields},
            attributes={spec.name: spec.extract(record) for spec in self.attributes},
            version=as_utc(record.updated_at) or utcnow(),
        )

    def validate_model(self) -> None:
        """
        Check the definition against its mapped model.

        Raises:
            IndexConfigurationError: Model unmapped, marker columns missing,
                unknown field sources, duplicate names or bad threshold
        """
        mapper = sa_inspect(self.model, raiseerr=False)
        if mapper is None:
            raise IndexConfigurationError(
                f"{self.model.__name__} is not a mapped SQLAlchemy model",
                index_name=self.name,
            )

        columns = set(mapper.columns.keys())
        required = list(REQUIRED_COLUMNS)
        if self.tracks_changes:
            required.extend(DIRTY_COLUMNS)
        missing = [column for column in required if column not in columns]
        if missing:
            raise IndexConfigurationError(
                f"{self.model.__name__} is missing columns {missing}; "
                "add DeltaIndexedMixin or run the delta column migration",
                index_name=self.name,
                details={"missing_columns": missing},
            )

        names = [spec.name for spec in self.fields] + [spec.name for spec in self.attributes]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise IndexConfigurationError(
                f"Duplicate field or attribute names: {duplicates}",
                index_name=self.name,
            )

        for spec in [*self.fields, *self.attributes]:
            source = spec.source or spec.name
            if isinstance(source, str) and not hasattr(self.model, source.split(".")[0]):
                raise IndexConfigurationError(
                    f"{self.model.__name__} has no attribute for source '{source}'",
                    index_name=self.name,
                    details={"field": spec.name},
                )

        if self.strategy == DeltaStrategy.DATETIME:
            if self.threshold is None or self.threshold <= timedelta(0):
                raise IndexConfigurationError(
                    "Datetime delta strategy requires a positive threshold",
                    index_name=self.name,
                )
        elif self.threshold is not None:
            raise IndexConfigurationError(
                f"threshold only applies to the datetime strategy, not {self.strategy.value}",
                index_name=self.name,
            )

        if self.dependencies and not self.tracks_changes:
            raise IndexConfigurationError(
                "Dependencies require a delta strategy other than none",
                index_name=self.name,
            )
        for dependency in self.dependencies:
            if sa_inspect(dependency.model, raiseerr=False) is None:
                raise IndexConfigurationError(
                    f"Dependency {dependency.model.__name__} is not a mapped SQLAlchemy model",
                    index_name=self.name,
                )
            owner = dependency.owner_id
            if isinstance(owner, str) and not hasattr(dependency.model, owner.split(".")[0]):
                raise IndexConfigurationError(
                    f"{dependency.model.__name__} has no attribute '{owner}'",
                    index_name=self.name,
                )
