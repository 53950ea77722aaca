"""
Type definitions for Protokoll.

This module defines the entity records stored in context directories, the
discovery results produced while walking up the directory tree, the declared
configuration schema, and the routing data structures.
"""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

EntityType = Literal["person", "project", "company", "term", "ignored"]
ContextType = Literal["work", "personal", "mixed"]
FilesystemStructure = Literal["none", "year", "month", "day"]
FilenameOption = Literal["date", "time", "subject"]
SignalType = Literal["explicit", "sounds_like", "topic", "associated_person", "associated_company"]
ConflictResolution = Literal["ask", "primary", "all"]

DEFAULT_FILENAME_OPTIONS: List[FilenameOption] = ["date", "time", "subject"]


# --- Discovery ---


class DiscoveredDir(BaseModel):
    """
    A marker directory found while walking up from the starting directory.

    Attributes:
        path: Absolute path of the marker directory (e.g. /home/me/.protokoll)
        level: Hops from the starting directory; 0 is the starting directory itself
    """

    path: str = Field(..., description="Path of the discovered marker directory")
    level: int = Field(..., ge=0, description="Distance from the starting directory")


class DiscoveryOptions(BaseModel):
    """Options for hierarchical discovery."""

    config_dir_name: str = Field(default=".protokoll", description="Marker directory name")
    config_file_name: str = Field(default="config.yaml", description="Config file inside each marker directory")
    max_levels: int = Field(default=10, ge=1, description="How many directories to walk up")
    starting_dir: Optional[str] = Field(default=None, description="Where to start (default: CWD)")


class HierarchicalConfig(BaseModel):
    """Result of discovery plus deep-merge of every config file found."""

    config: Dict[str, Any] = Field(default_factory=dict, description="Merged configuration mapping")
    discovered_dirs: List[DiscoveredDir] = Field(default_factory=list, description="Marker directories, nearest first")
    context_dirs: List[str] = Field(default_factory=list, description="context/ subdirectories, nearest first")


# --- Entities ---


class EntityRelationship(BaseModel):
    """Typed link to another entity, addressed as redaksjon://{type}/{id}."""

    uri: str
    relationship: str
    notes: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class BaseEntity(BaseModel):
    """
    Fields shared by every entity variant.

    Unknown keys found in entity files are kept so that an edit does not
    drop data written by other tools.
    """

    model_config = ConfigDict(extra="allow")

    id: str = Field(..., min_length=1, description="Unique identifier (slug)")
    name: str = Field(..., description="Display name, always the correct spelling")
    sounds_like: List[str] = Field(default_factory=list, description="Common mis-transcriptions of the name")
    active: bool = Field(default=True)
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    relationships: List[EntityRelationship] = Field(default_factory=list)


class Person(BaseEntity):
    type: Literal["person"] = "person"
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company: Optional[str] = None
    role: Optional[str] = None
    context: Optional[str] = Field(default=None, description="How the user knows them")


class ProjectClassification(BaseModel):
    """Signals used to decide whether a transcript belongs to a project."""

    model_config = ConfigDict(extra="allow")

    context_type: ContextType = "work"
    explicit_phrases: List[str] = Field(default_factory=list, description="High-confidence trigger phrases")
    topics: List[str] = Field(default_factory=list, description="Topic keywords")
    associated_people: List[str] = Field(default_factory=list, description="Person ids")
    associated_companies: List[str] = Field(default_factory=list, description="Company ids")


class ProjectRouting(BaseModel):
    """Where a project's transcripts are written; destination falls back to the global default."""

    model_config = ConfigDict(extra="allow")

    destination: Optional[str] = None
    structure: FilesystemStructure = "month"
    filename_options: List[FilenameOption] = Field(default_factory=lambda: list(DEFAULT_FILENAME_OPTIONS))
    auto_tags: List[str] = Field(default_factory=list)


class Project(BaseEntity):
    type: Literal["project"] = "project"
    description: Optional[str] = None
    classification: ProjectClassification = Field(default_factory=ProjectClassification)
    routing: ProjectRouting = Field(default_factory=ProjectRouting)


class Company(BaseEntity):
    type: Literal["company"] = "company"
    full_name: Optional[str] = None
    industry: Optional[str] = None


class Term(BaseEntity):
    type: Literal["term"] = "term"
    expansion: Optional[str] = Field(default=None, description="Full form if the term is an acronym")
    domain: Optional[str] = None
    description: Optional[str] = None
    topics: List[str] = Field(default_factory=list)
    projects: List[str] = Field(default_factory=list, description="Associated project ids")


class IgnoredTerm(BaseEntity):
    """A phrase the user does not want to be asked about again."""

    type: Literal["ignored"] = "ignored"
    reason: Optional[str] = None
    ignored_at: Optional[str] = None


Entity = Annotated[Union[Person, Project, Company, Term, IgnoredTerm], Field(discriminator="type")]

entity_adapter: TypeAdapter = TypeAdapter(Entity)


# --- Configuration schema ---


class _ConfigSection(BaseModel):
    model_config = ConfigDict(extra="allow", alias_generator=to_camel, populate_by_name=True)


class SmartAssistanceConfig(_ConfigSection):
    """Settings for LLM-assisted metadata generation (consumed outside this package)."""

    enabled: bool = True
    phonetic_model: str = "gpt-5-nano"
    analysis_model: str = "gpt-5-mini"
    sounds_like_on_add: bool = True
    trigger_phrases_on_add: bool = True
    prompt_for_source: bool = True
    timeout: int = Field(default=30000, description="Milliseconds")


class SignalWeights(_ConfigSection):
    explicit: float = Field(default=0.9, ge=0.0, le=1.0)
    sounds_like: float = Field(default=0.7, ge=0.0, le=1.0)
    associated_person: float = Field(default=0.6, ge=0.0, le=1.0)
    associated_company: float = Field(default=0.5, ge=0.0, le=1.0)
    topic: float = Field(default=0.3, ge=0.0, le=1.0)


class RoutingSettings(_ConfigSection):
    conflict_resolution: ConflictResolution = "primary"
    min_confidence: float = Field(default=0.3, ge=0.0, le=1.0)
    weights: SignalWeights = Field(default_factory=SignalWeights)


class ProtokollConfig(_ConfigSection):
    """
    Declared schema for the merged config.yaml.

    Keys may be written in snake_case or camelCase. Sections this package does
    not know about are passed through untouched.
    """

    version: Optional[int] = None
    smart_assistance: SmartAssistanceConfig = Field(default_factory=SmartAssistanceConfig)
    output_directory: str = "~/notes"
    output_structure: FilesystemStructure = "month"
    output_filename_options: List[FilenameOption] = Field(default_factory=lambda: list(DEFAULT_FILENAME_OPTIONS))
    routing: RoutingSettings = Field(default_factory=RoutingSettings)


# --- Routing ---


class RouteDestination(BaseModel):
    path: str = Field(..., description="Base destination directory, may start with ~")
    structure: FilesystemStructure = "month"
    filename_options: List[FilenameOption] = Field(default_factory=lambda: list(DEFAULT_FILENAME_OPTIONS))
    create_directories: bool = True


class RoutingSignal(BaseModel):
    """One piece of evidence that a transcript belongs to a project."""

    type: SignalType
    value: str
    weight: float = Field(..., ge=0.0, le=1.0)
    source: str = Field(..., description="Configuration field that produced the signal")


class ProjectRoute(BaseModel):
    """A project as the routing engine sees it."""

    project_id: str
    destination: Optional[RouteDestination] = Field(default=None, description="None inherits the default destination")
    classification: ProjectClassification = Field(default_factory=ProjectClassification)
    sounds_like: List[str] = Field(default_factory=list)
    active: bool = True
    auto_tags: List[str] = Field(default_factory=list)


class RoutingConfig(BaseModel):
    default: RouteDestination
    projects: List[ProjectRoute] = Field(default_factory=list, description="Configured order is authoritative")
    conflict_resolution: ConflictResolution = "primary"
    min_confidence: float = Field(default=0.3, ge=0.0, le=1.0)
    weights: SignalWeights = Field(default_factory=SignalWeights)


class ClassificationResult(BaseModel):
    project_id: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    signals: List[RoutingSignal] = Field(default_factory=list)
    reasoning: str = ""


class RoutingContext(BaseModel):
    transcript_text: str
    audio_date: datetime
    source_file: str = ""
    hash: Optional[str] = None
    detected_people: Optional[List[str]] = Field(default=None, description="Person ids found by earlier processing")
    detected_companies: Optional[List[str]] = Field(default=None, description="Company ids found by earlier processing")


class RouteDecision(BaseModel):
    destination: RouteDestination
    project_id: Optional[str] = None
    confidence: float = Field(..., ge=0.0, le=1.0)
    signals: List[RoutingSignal] = Field(default_factory=list)
    reasoning: str = ""
    auto_tags: List[str] = Field(default_factory=list)
    alternate_matches: List[ClassificationResult] = Field(default_factory=list)
