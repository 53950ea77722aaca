"""
Context system entry point.

A ContextInstance ties together hierarchical discovery, the merged
configuration and the entity store. It is built once with
ContextInstance.build() and handed to everything that needs entity data.
"""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .config import ConfigError
from .discovery import CONTEXT_SUBDIR_NAME, load_hierarchical_config
from .storage import EntityStore
from .types import (
    Company,
    DiscoveredDir,
    DiscoveryOptions,
    Entity,
    EntityRelationship,
    EntityType,
    HierarchicalConfig,
    IgnoredTerm,
    Person,
    Project,
    ProtokollConfig,
    Term,
)

logger = logging.getLogger(__name__)

PARENT_RELATIONSHIPS = {"parent", "child_of", "part_of"}
ENTITY_URI_PATTERN = re.compile(r"^redaksjon://[^/]+/(.+)$")


class ContextError(Exception):
    """Raised when the context cannot satisfy a request (e.g. nowhere to save)."""

    pass


def slugify_term(term: str) -> str:
    """Lowercase a phrase and collapse everything except letters and digits into single dashes."""
    return re.sub(r"[^a-z0-9]+", "-", term.lower()).strip("-")


def _id_from_uri(uri: str) -> Optional[str]:
    match = ENTITY_URI_PATTERN.match(uri)
    return match.group(1) if match else None


def _related_ids(relationships: List[EntityRelationship], kinds: set) -> List[str]:
    ids = []
    for relationship in relationships:
        if relationship.relationship in kinds:
            entity_id = _id_from_uri(relationship.uri)
            if entity_id:
                ids.append(entity_id)
    return ids


def _parent_id(project: Project) -> Optional[str]:
    parents = _related_ids(project.relationships, PARENT_RELATIONSHIPS)
    return parents[0] if parents else None


def project_relationship_distance(first: Project, second: Project) -> int:
    """
    Relationship distance between two projects.

    Returns 0 for the same project, 1 for parent/child, 2 for siblings or
    projects sharing a parent, and -1 when unrelated.
    """
    if first.id == second.id:
        return 0
    first_parent, second_parent = _parent_id(first), _parent_id(second)
    if first_parent == second.id or second_parent == first.id:
        return 1
    if second.id in _related_ids(first.relationships, {"sibling"}) or first.id in _related_ids(second.relationships, {"sibling"}):
        return 2
    if first_parent and first_parent == second_parent:
        return 2
    return -1


class ContextInstance:
    """
    Discovered configuration plus the merged entity collections.

    Use build() to construct; the instance is fully loaded on return.
    """

    def __init__(self, options: DiscoveryOptions, discovery: HierarchicalConfig, store: EntityStore, explicit_dirs: Optional[List[str]] = None):
        self.options = options
        self._discovery = discovery
        self._store = store
        self._explicit_dirs = explicit_dirs

    @classmethod
    def build(cls, options: Optional[DiscoveryOptions] = None, context_directories: Optional[List[str]] = None) -> "ContextInstance":
        """
        Discover, merge and load.

        Args:
            options: Discovery options; defaults walk up from the CWD looking for .protokoll
            context_directories: Explicit context directories, nearest first.
                When given, discovery is skipped and no config is merged.

        Returns:
            A loaded ContextInstance
        """
        options = options or DiscoveryOptions()
        discovery = cls._discover(options, context_directories)
        store = EntityStore.from_directories(discovery.context_dirs)
        logger.debug(f"Context built from {len(discovery.discovered_dirs)} directories, {len(discovery.context_dirs)} with entities")
        return cls(options, discovery, store, context_directories)

    @staticmethod
    def _discover(options: DiscoveryOptions, context_directories: Optional[List[str]]) -> HierarchicalConfig:
        if context_directories is not None:
            return HierarchicalConfig(
                config={},
                discovered_dirs=[DiscoveredDir(path=directory, level=index) for index, directory in enumerate(context_directories)],
                context_dirs=list(context_directories),
            )
        return load_hierarchical_config(options)

    def reload(self) -> None:
        """Re-run discovery and reload every entity from disk."""
        self._discovery = self._discover(self.options, self._explicit_dirs)
        self._store.clear()
        self._store.load(self._discovery.context_dirs)

    # --- Discovery info ---

    def has_context(self) -> bool:
        return len(self._discovery.discovered_dirs) > 0

    def get_discovered_dirs(self) -> List[DiscoveredDir]:
        return list(self._discovery.discovered_dirs)

    def get_context_dirs(self) -> List[str]:
        return list(self._discovery.context_dirs)

    def get_config(self) -> Dict[str, Any]:
        """The raw merged configuration mapping, unknown keys included."""
        return self._discovery.config

    def get_settings(self) -> ProtokollConfig:
        """
        The merged configuration validated against the declared schema.

        Raises:
            ConfigError: If a merged value does not fit the schema; names the config files involved
        """
        try:
            return ProtokollConfig.model_validate(self._discovery.config)
        except ValidationError as e:
            sources = [
                str(Path(d.path) / self.options.config_file_name)
                for d in self._discovery.discovered_dirs
                if (Path(d.path) / self.options.config_file_name).is_file()
            ]
            raise ConfigError(f"Invalid configuration in {', '.join(sources) or 'merged config'}: {e}") from e

    # --- Entity access ---

    def get(self, entity_type: EntityType, entity_id: str) -> Optional[Entity]:
        return self._store.get(entity_type, entity_id)

    def get_all(self, entity_type: EntityType) -> List[Entity]:
        return self._store.get_all(entity_type)

    def get_person(self, entity_id: str) -> Optional[Person]:
        return self._store.get("person", entity_id)

    def get_project(self, entity_id: str) -> Optional[Project]:
        return self._store.get("project", entity_id)

    def get_company(self, entity_id: str) -> Optional[Company]:
        return self._store.get("company", entity_id)

    def get_term(self, entity_id: str) -> Optional[Term]:
        return self._store.get("term", entity_id)

    def get_ignored(self, entity_id: str) -> Optional[IgnoredTerm]:
        return self._store.get("ignored", entity_id)

    def get_all_people(self) -> List[Person]:
        return self._store.get_all("person")

    def get_all_projects(self) -> List[Project]:
        return self._store.get_all("project")

    def get_all_companies(self) -> List[Company]:
        return self._store.get_all("company")

    def get_all_terms(self) -> List[Term]:
        return self._store.get_all("term")

    def get_all_ignored(self) -> List[IgnoredTerm]:
        return self._store.get_all("ignored")

    def is_ignored(self, term: str) -> bool:
        """Whether a phrase was marked as ignored, by slug id or by name."""
        slug = slugify_term(term)
        return any(ignored.id == slug or ignored.name.lower() == term.lower() for ignored in self.get_all_ignored())

    # --- Search ---

    def search(self, query: str) -> List[Entity]:
        return self._store.search(query)

    def find_by_sounds_like(self, phrase: str) -> Optional[Entity]:
        return self._store.find_by_sounds_like(phrase)

    def search_with_context(self, query: str, context_project_id: Optional[str] = None) -> List[Entity]:
        """
        Search, ranking entities related to a project first.

        Projects score by relationship distance to the context project; terms
        associated with it score highest. Without a known context project the
        plain search order is kept.
        """
        results = self.search(query)
        context_project = self.get_project(context_project_id) if context_project_id else None
        if context_project is None:
            return results

        def score(entity: Entity) -> int:
            if entity.type == "project":
                distance = project_relationship_distance(context_project, entity)
                return (3 - distance) * 50 if distance >= 0 else 0
            if entity.type == "term" and context_project.id in entity.projects:
                return 100
            return 0

        return sorted(results, key=score, reverse=True)

    def get_related_projects(self, project_id: str, max_distance: int = 2) -> List[Project]:
        """Projects within max_distance of the given one, closest first."""
        project = self.get_project(project_id)
        if project is None:
            return []

        related = []
        for other in self.get_all_projects():
            if other.id == project_id:
                continue
            distance = project_relationship_distance(project, other)
            if 0 <= distance <= max_distance:
                related.append((distance, other))

        return [other for _, other in sorted(related, key=lambda item: item[0])]

    # --- Modification ---

    def _target_context_dir(self) -> str:
        if self._explicit_dirs:
            return self._explicit_dirs[0]
        if not self._discovery.discovered_dirs:
            raise ContextError(f"No {self.options.config_dir_name} directory found. Create one to store context entities.")
        closest = min(self._discovery.discovered_dirs, key=lambda d: d.level)
        return str(Path(closest.path) / CONTEXT_SUBDIR_NAME)

    def save_entity(self, entity: Entity, allow_update: bool = False) -> str:
        """
        Persist an entity in the most specific context directory.

        Args:
            entity: Entity to write
            allow_update: True for edit (replace); False for add, which fails on a taken id

        Returns:
            Path of the written file
        """
        target = self._target_context_dir()
        file_path = self._store.save(entity, target, allow_update=allow_update)
        if target not in self._discovery.context_dirs:
            self._discovery.context_dirs.insert(0, target)
        return str(file_path)

    def delete_entity(self, entity: Entity) -> bool:
        """
        Delete an entity from the most specific context directory.

        A copy of the same id in an ancestor directory becomes visible again.

        Returns:
            False if the entity was not found

        Raises:
            ContextError: If the entity is only defined in an ancestor directory
        """
        if self._store.get(entity.type, entity.id) is None:
            return False
        target = self._target_context_dir()
        if not self._store.owns(entity.type, entity.id, target):
            raise ContextError(
                f'{entity.type.capitalize()} "{entity.id}" is defined in an ancestor directory '
                f"({self.get_entity_file_path(entity)}) and cannot be deleted from {target}"
            )
        return self._store.delete(entity.type, entity.id, target)

    def get_entity_file_path(self, entity: Entity) -> Optional[str]:
        file_path = self._store.get_entity_file_path(entity.type, entity.id)
        return str(file_path) if file_path else None
