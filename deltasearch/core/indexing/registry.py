"""
Index registry.

Holds the process-wide set of IndexDefinitions. Definitions are validated
on registration; an invalid one is kept as disabled so only that index
fails while the others keep serving.

Dependencies: deltasearch.core.indexing.definitions
System role: Index configuration lookup
"""

import importlib
import logging
from typing import Any

from deltasearch.core.exceptions import IndexConfigurationError, IndexNotFoundError
from deltasearch.core.indexing.definitions import DependencySpec, IndexDefinition

logger = logging.getLogger(__name__)


class IndexRegistry:
    """Registered index definitions keyed by name."""

    def __init__(self) -> None:
        self._definitions: dict[str, IndexDefinition] = {}
        self._errors: dict[str, IndexConfigurationError] = {}

    def register(self, definition: IndexDefinition) -> bool:
        """
        Validate and register an index definition.

        Args:
            definition: Index definition

        Returns:
            bool: True if the index is enabled, False if it was recorded as disabled
        """
        if definition.name in self._definitions or definition.name in self._errors:
            error = IndexConfigurationError(
                f"Index '{definition.name}' is already registered",
                index_name=definition.name,
            )
            logger.error(f"{__name__}:register - {error}")
            return False

        try:
            definition.validate_model()
        except IndexConfigurationError as e:
            self._errors[definition.name] = e
            logger.error(
                f"{__name__}:register - Index disabled: {e.message}",
                extra={"index_name": definition.name},
            )
            return False

        self._definitions[definition.name] = definition
        logger.info(
            f"{__name__}:register - Index registered",
            extra={
                "index_name": definition.name,
                "model": definition.model.__name__,
                "strategy": definition.strategy.value,
            },
        )
        return True

    def get(self, name: str) -> IndexDefinition:
        """
        Look up an enabled index.

        Raises:
            IndexConfigurationError: Index is registered but disabled
            IndexNotFoundError: No index with this name
        """
        definition = self._definitions.get(name)
        if definition is not None:
            return definition
        if name in self._errors:
            raise self._errors[name]
        raise IndexNotFoundError(name)

    def definitions(self) -> list[IndexDefinition]:
        """Enabled definitions ordered by name."""
        return [self._definitions[name] for name in sorted(self._definitions)]

    def names(self) -> list[str]:
        return sorted(self._definitions)

    def errors(self) -> dict[str, IndexConfigurationError]:
        """Disabled index names mapped to their configuration error."""
        return dict(self._errors)

    def for_instance(self, obj: Any) -> list[IndexDefinition]:
        """Definitions whose model the object is an instance of."""
        return [d for d in self.definitions() if isinstance(obj, d.model)]

    def dependents_of(self, obj: Any) -> list[tuple[IndexDefinition, DependencySpec]]:
        """(definition, dependency) pairs fed by changes to the object."""
        return [
            (definition, dependency)
            for definition in self.definitions()
            for dependency in definition.dependencies
            if isinstance(obj, dependency.model)
        ]

    def clear(self) -> None:
        self._definitions.clear()
        self._errors.clear()


index_registry = IndexRegistry()


def load_indexes_module(module_path: str) -> Any:
    """
    Import the application module that registers its index definitions.

    Args:
        module_path: Dotted module path

    Returns:
        The imported module
    """
    module = importlib.import_module(module_path)
    logger.info(
        f"{__name__}:load_indexes_module - Loaded index definitions",
        extra={"module_path": module_path, "indexes": index_registry.names()},
    )
    return module
