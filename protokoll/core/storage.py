"""
Entity storage for context directories.

Each context directory holds one YAML file per entity under a folder named
after the entity type (people/, projects/, companies/, terms/, ignored/).
Loading indexes every entity by id; when the same id is defined in several
context directories, the most specific one (nearest to the working
directory) wins.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import yaml
from pydantic import ValidationError

from .timing import timer
from .types import Entity, EntityType, entity_adapter

logger = logging.getLogger(__name__)

DIRECTORY_TO_TYPE: Dict[str, EntityType] = {
    "people": "person",
    "projects": "project",
    "companies": "company",
    "terms": "term",
    "ignored": "ignored",
}

TYPE_TO_DIRECTORY: Dict[EntityType, str] = {entity_type: dir_name for dir_name, entity_type in DIRECTORY_TO_TYPE.items()}

ENTITY_FILE_EXTENSIONS = (".yaml", ".yml")


class StorageError(Exception):
    """Raised when an entity file cannot be read, parsed or written."""

    pass


class EntityExistsError(StorageError):
    """Raised when adding an entity whose id is already taken."""

    pass


def parse_entity_file(file_path: Path, entity_type: EntityType) -> Optional[Entity]:
    """
    Parse one entity document.

    Args:
        file_path: Path of the YAML document
        entity_type: Type implied by the folder the file lives in

    Returns:
        The entity, or None when the document has no id

    Raises:
        StorageError: If the document is not valid YAML or fails validation
    """
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise StorageError(f"Failed to read entity file '{file_path}': {e}") from e

    if not isinstance(data, dict) or data.get("id") in (None, ""):
        logger.warning(f"Skipping {file_path}: no entity id")
        return None

    data["id"] = str(data["id"])
    data["type"] = entity_type

    try:
        return entity_adapter.validate_python(data)
    except ValidationError as e:
        raise StorageError(f"Invalid {entity_type} in '{file_path}': {e}") from e


def is_safe_entity_id(entity_id: str) -> bool:
    """Ids become file names, so they may not contain path separators or '..'."""
    return "/" not in entity_id and "\\" not in entity_id and ".." not in entity_id


def _entity_files(type_dir: Path) -> List[Path]:
    if not type_dir.is_dir():
        return []
    return [path for path in sorted(type_dir.iterdir()) if path.suffix in ENTITY_FILE_EXTENSIONS and path.is_file()]


def serialize_entity(entity: Entity) -> str:
    """Dump an entity to YAML; the type is implied by the folder and is not written."""
    data = entity.model_dump(mode="json", exclude_none=True, exclude={"type"})
    return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)


class EntityStore:
    """
    In-memory index of every entity found in a list of context directories.

    The store is built once from disk and afterwards only changes through
    save() and delete(), which rewrite or remove the owning file.
    """

    def __init__(self):
        self._entities: Dict[EntityType, Dict[str, Entity]] = {entity_type: {} for entity_type in TYPE_TO_DIRECTORY}
        self._paths: Dict[Tuple[EntityType, str], Path] = {}
        self._context_dirs: List[str] = []

    @classmethod
    def from_directories(cls, context_dirs: List[str]) -> "EntityStore":
        """Build a fully loaded store from context directories listed nearest first."""
        store = cls()
        store.load(context_dirs)
        return store

    @timer
    def load(self, context_dirs: List[str]) -> None:
        """
        Load entities from context directories listed nearest first.

        Farther directories are read first so that nearer ones overwrite them.
        Missing type folders are skipped.
        """
        for context_dir in reversed(context_dirs):
            for dir_name, entity_type in DIRECTORY_TO_TYPE.items():
                for file_path in _entity_files(Path(context_dir) / dir_name):
                    entity = parse_entity_file(file_path, entity_type)
                    if entity is None:
                        continue
                    self._entities[entity_type][entity.id] = entity
                    self._paths[(entity_type, entity.id)] = file_path

            if context_dir in self._context_dirs:
                self._context_dirs.remove(context_dir)
            self._context_dirs.insert(0, context_dir)

        logger.debug(f"Loaded {len(self.search(''))} entities from {len(context_dirs)} context directories")

    def _find_in_directory(self, context_dir: str, entity_type: EntityType, entity_id: str) -> Optional[Tuple[Entity, Path]]:
        for file_path in _entity_files(Path(context_dir) / TYPE_TO_DIRECTORY[entity_type]):
            entity = parse_entity_file(file_path, entity_type)
            if entity is not None and entity.id == entity_id:
                return entity, file_path
        return None

    def owns(self, entity_type: EntityType, entity_id: str, context_dir: str) -> bool:
        """Whether the entity's backing file lives in the given context directory."""
        file_path = self._paths.get((entity_type, entity_id))
        return file_path is not None and file_path.parent == Path(context_dir) / TYPE_TO_DIRECTORY[entity_type]

    def save(self, entity: Entity, context_dir: str, allow_update: bool = False) -> Path:
        """
        Write an entity to its own file in the given context directory.

        Args:
            entity: Entity to persist
            context_dir: Most specific context directory (never an ancestor)
            allow_update: True for an edit; False for an add, which fails on a taken id

        Returns:
            Path of the written file

        Raises:
            EntityExistsError: If the id exists and allow_update is False
            StorageError: If the id is not a usable file name or the file cannot be written
        """
        if not is_safe_entity_id(entity.id):
            raise StorageError(f"Invalid {entity.type} id '{entity.id}': ids cannot contain path separators or '..'")

        key = (entity.type, entity.id)
        if not allow_update and entity.id in self._entities[entity.type]:
            raise EntityExistsError(f'{entity.type.capitalize()} "{entity.id}" already exists')

        type_dir = Path(context_dir) / TYPE_TO_DIRECTORY[entity.type]
        file_path = type_dir / f"{entity.id}.yaml"

        # Edits keep the existing file name when it already lives in the target directory
        existing = self._paths.get(key)
        if allow_update and existing is not None and existing.parent == type_dir:
            file_path = existing

        try:
            type_dir.mkdir(parents=True, exist_ok=True)
            file_path.write_text(serialize_entity(entity), encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Failed to write entity file '{file_path}': {e}") from e

        self._entities[entity.type][entity.id] = entity
        self._paths[key] = file_path
        if context_dir not in self._context_dirs:
            self._context_dirs.insert(0, context_dir)
        logger.debug(f"Saved {entity.type} '{entity.id}' to {file_path}")
        return file_path

    def delete(self, entity_type: EntityType, entity_id: str, context_dir: str) -> bool:
        """
        Remove an entity's file from the given context directory.

        When a farther context directory defines the same id, its copy takes
        the deleted entity's place in the index.

        Args:
            entity_type: Type of the entity
            entity_id: Id of the entity
            context_dir: Most specific context directory; files elsewhere are never removed

        Returns:
            False if the entity is not stored at all

        Raises:
            StorageError: If the entity's file lives outside context_dir or cannot be removed
        """
        key = (entity_type, entity_id)
        file_path = self._paths.get(key)
        if file_path is None:
            return False
        if not self.owns(entity_type, entity_id, context_dir):
            raise StorageError(f"{entity_type.capitalize()} \"{entity_id}\" is defined in '{file_path}', outside '{context_dir}'")

        try:
            file_path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete entity file '{file_path}': {e}") from e

        del self._paths[key]
        self._entities[entity_type].pop(entity_id, None)
        logger.debug(f"Deleted {entity_type} '{entity_id}' ({file_path})")

        for other_dir in self._context_dirs:
            if other_dir == context_dir:
                continue
            found = self._find_in_directory(other_dir, entity_type, entity_id)
            if found is not None:
                self._entities[entity_type][entity_id], self._paths[key] = found
                logger.debug(f"{entity_type.capitalize()} '{entity_id}' now resolves to {found[1]}")
                break

        return True

    def get(self, entity_type: EntityType, entity_id: str) -> Optional[Entity]:
        return self._entities[entity_type].get(entity_id)

    def get_all(self, entity_type: EntityType) -> List[Entity]:
        return list(self._entities[entity_type].values())

    def get_entity_file_path(self, entity_type: EntityType, entity_id: str) -> Optional[Path]:
        """Path of the file an entity was loaded from or saved to."""
        return self._paths.get((entity_type, entity_id))

    def iter_entities(self) -> Iterable[Entity]:
        for entities in self._entities.values():
            yield from entities.values()

    def search(self, query: str) -> List[Entity]:
        """
        Case-insensitive substring search over id, name and sounds-like variants.

        An empty query matches every entity, which callers use to count the
        whole merged collection.
        """
        needle = query.lower()
        results = []
        for entity in self.iter_entities():
            haystack = [entity.id, entity.name, *entity.sounds_like]
            if any(needle in value.lower() for value in haystack):
                results.append(entity)
        return results

    def find_by_sounds_like(self, phrase: str) -> Optional[Entity]:
        """Return the first entity with a sounds-like variant equal to phrase (case-insensitive)."""
        normalized = phrase.lower().strip()
        for entity in self.iter_entities():
            if any(variant.lower() == normalized for variant in entity.sounds_like):
                return entity
        return None

    def clear(self) -> None:
        for entities in self._entities.values():
            entities.clear()
        self._paths.clear()
        self._context_dirs.clear()
