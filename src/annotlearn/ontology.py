"""Ontology access for annotlearn.

The workers never own schema or ontology trees. They ask an
OntologyProvider two questions about every annotation: should this
property receive suggestions, and what are the ancestors of the value.

StaticOntology is a small in-memory provider, loadable from TOML, used by
the CLI and the tests:

    [schemas."http://example.org/schema".properties."http://example.org/cell"]
    suggestible = true

    [schemas."http://example.org/schema".properties."http://example.org/cell".parents]
    "http://example.org/hepg2" = "http://example.org/liver_cell"
"""

import logging
import tomllib
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Sequence

from annotlearn.exceptions import OntologyError

logger = logging.getLogger(__name__)


class OntologyProvider(ABC):
    """Schema and ontology-tree lookups consumed by the workers."""

    @abstractmethod
    def has_schema(self, schema_uri: Optional[str]) -> bool:
        """Whether the schema is known."""
        pass

    @abstractmethod
    def is_suggestible(
        self, schema_uri: str, prop_uri: str, group_nest: Sequence[str] = ()
    ) -> bool:
        """Whether annotations on this property should be modelled."""
        pass

    @abstractmethod
    def expand_ancestors(
        self,
        schema_uri: str,
        prop_uri: str,
        group_nest: Sequence[str],
        value_uri: str,
    ) -> Optional[list[str]]:
        """Return the value followed by all of its ancestors.

        Returns:
            List starting with value_uri, or None when no tree exists
            for the property
        """
        pass


class StaticOntology(OntologyProvider):
    """In-memory ontology keyed by schema then property.

    Trees are stored as child -> parent maps. Group nests are accepted but
    not used to distinguish trees.

    Example:
        >>> onto = StaticOntology({"s": {"p": {"suggestible": True, "parents": {"b": "a"}}}})
        >>> onto.expand_ancestors("s", "p", [], "b")
        ['b', 'a']
    """

    def __init__(self, schemas: dict[str, dict[str, dict]]):
        self.schemas = schemas

    @classmethod
    def from_toml(cls, path: str | Path) -> "StaticOntology":
        """Load an ontology definition file.

        Raises:
            OntologyError: If the file cannot be read or is malformed
        """
        path = Path(path)
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise OntologyError(f"Failed to load ontology {path}: {e}") from e

        schemas = {}
        for schema_uri, schema in data.get("schemas", {}).items():
            if not isinstance(schema, dict):
                raise OntologyError(f"Schema {schema_uri} must be a table")
            schemas[schema_uri] = schema.get("properties", {})
        logger.info(f"Loaded ontology with {len(schemas)} schemas from {path}")
        return cls(schemas)

    def _property(self, schema_uri: Optional[str], prop_uri: str) -> Optional[dict]:
        if schema_uri is None:
            return None
        return self.schemas.get(schema_uri, {}).get(prop_uri)

    def has_schema(self, schema_uri: Optional[str]) -> bool:
        return schema_uri is not None and schema_uri in self.schemas

    def is_suggestible(
        self, schema_uri: str, prop_uri: str, group_nest: Sequence[str] = ()
    ) -> bool:
        prop = self._property(schema_uri, prop_uri)
        return bool(prop and prop.get("suggestible", False))

    def expand_ancestors(
        self,
        schema_uri: str,
        prop_uri: str,
        group_nest: Sequence[str],
        value_uri: str,
    ) -> Optional[list[str]]:
        prop = self._property(schema_uri, prop_uri)
        if prop is None:
            return None
        parents = prop.get("parents", {})

        result = [value_uri]
        seen = {value_uri}
        current = parents.get(value_uri)
        while current is not None and current not in seen:
            result.append(current)
            seen.add(current)
            current = parents.get(current)
        return result
