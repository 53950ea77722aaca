"""
Transcript routing.

Turns classification results into a RouteDecision (destination, project,
confidence, reasoning) and builds the output path for a routed transcript
from the destination's directory structure and filename options.

The engine never asks the user anything. Callers read `confidence` and
`reasoning` and decide for themselves whether to confirm a low-confidence
decision.
"""

import logging
import os
import re
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .classifier import SignalClassifier
from .context import ContextInstance
from .timing import timer
from .types import (
    ClassificationResult,
    Project,
    ProjectRoute,
    RouteDecision,
    RouteDestination,
    RoutingConfig,
    RoutingContext,
)

logger = logging.getLogger(__name__)

ALTERNATE_MATCH_THRESHOLD = 0.5
OUTPUT_EXTENSION = ".md"
SUBJECT_MAX_LENGTH = 40

SUBJECT_PREFIX_PATTERN = re.compile(r"^(this is a note about|note about|regarding|re:|meeting notes?:?)", re.IGNORECASE)
SENTENCE_END_PATTERN = re.compile(r"[.!?]")


class RoutingError(Exception):
    """Raised when routing configuration refers to something that does not exist."""

    pass


def project_to_route(project: Project) -> ProjectRoute:
    """Convert a context project into the shape the routing engine scores."""
    destination = None
    if project.routing.destination:
        destination = RouteDestination(
            path=project.routing.destination,
            structure=project.routing.structure,
            filename_options=list(project.routing.filename_options),
        )
    return ProjectRoute(
        project_id=project.id,
        destination=destination,
        classification=project.classification,
        sounds_like=list(project.sounds_like),
        active=project.active,
        auto_tags=list(project.routing.auto_tags),
    )


def build_routing_config(context: ContextInstance, default: Optional[RouteDestination] = None) -> RoutingConfig:
    """
    Build the routing configuration from the context.

    Args:
        context: Loaded context; its active projects become routes in load order
        default: Default destination; when omitted it comes from the output_* settings

    Returns:
        RoutingConfig ready for RoutingEngine
    """
    settings = context.get_settings()
    if default is None:
        default = RouteDestination(
            path=settings.output_directory,
            structure=settings.output_structure,
            filename_options=list(settings.output_filename_options),
        )

    routes = [project_to_route(project) for project in context.get_all_projects() if project.active]
    logger.debug(f"Loaded {len(routes)} projects from context for routing")

    return RoutingConfig(
        default=default,
        projects=routes,
        conflict_resolution=settings.routing.conflict_resolution,
        min_confidence=settings.routing.min_confidence,
        weights=settings.routing.weights,
    )


class RoutingEngine:
    """
    Decides where a transcript goes.

    When several projects tie on confidence the first one in the configured
    project list wins.
    """

    def __init__(self, config: RoutingConfig, context: ContextInstance):
        self._config = config.model_copy(deep=True)
        self.classifier = SignalClassifier(context, self._config.weights)

    @classmethod
    def from_context(cls, context: ContextInstance, default: Optional[RouteDestination] = None) -> "RoutingEngine":
        return cls(build_routing_config(context, default), context)

    def get_config(self) -> RoutingConfig:
        return self._config.model_copy(deep=True)

    def add_project(self, route: ProjectRoute) -> None:
        """Append a project route; it loses ties to every project configured before it."""
        self._config.projects.append(route)

    def update_default_route(self, destination: RouteDestination) -> None:
        self._config.default = destination

    def resolve_destination(self, route: ProjectRoute) -> RouteDestination:
        """A project's own destination, or the default one when it has none."""
        if route.destination is not None and route.destination.path:
            return route.destination
        return self._config.default.model_copy(deep=True)

    def _find_route(self, project_id: str) -> ProjectRoute:
        for route in self._config.projects:
            if route.project_id == project_id:
                return route
        raise RoutingError(f"No route configured for project '{project_id}'")

    @timer
    def route(self, routing_context: RoutingContext) -> RouteDecision:
        """
        Route a transcript.

        Args:
            routing_context: Transcript text plus audio date and source file

        Returns:
            RouteDecision; project_id is None when no project reaches the minimum confidence
        """
        results = self.classifier.classify(routing_context, self._config.projects)
        qualified = [result for result in results if result.confidence >= self._config.min_confidence]

        if not qualified:
            reasoning = "No project matches found, using default routing"
            if results:
                best = results[0]
                reasoning = f"Best match '{best.project_id}' ({best.confidence:.2f}) is below the minimum confidence, using default routing"
            logger.debug(reasoning)
            return RouteDecision(
                destination=self._config.default.model_copy(deep=True),
                project_id=None,
                confidence=1.0,
                signals=[],
                reasoning=reasoning,
            )

        best = qualified[0]
        route = self._find_route(best.project_id)

        alternates: List[ClassificationResult] = []
        if self._config.conflict_resolution != "primary":
            alternates = [result for result in qualified[1:] if result.confidence > ALTERNATE_MATCH_THRESHOLD]

        logger.debug(f"Routed to '{best.project_id}' with confidence {best.confidence:.2f}")
        return RouteDecision(
            destination=self.resolve_destination(route),
            project_id=best.project_id,
            confidence=best.confidence,
            signals=best.signals,
            reasoning=best.reasoning,
            auto_tags=list(route.auto_tags),
            alternate_matches=alternates,
        )

    def build_output_path(self, decision: RouteDecision, routing_context: RoutingContext) -> str:
        return build_output_path(decision.destination, routing_context)


def expand_path(path: str) -> str:
    return os.path.expanduser(path) if path.startswith("~") else path


def build_directory_path(base_path: str, structure: str, date: datetime) -> str:
    """Append year, year/month or year/month/day to base_path (month and day unpadded)."""
    if structure == "year":
        return os.path.join(base_path, str(date.year))
    if structure == "month":
        return os.path.join(base_path, str(date.year), str(date.month))
    if structure == "day":
        return os.path.join(base_path, str(date.year), str(date.month), str(date.day))
    return base_path


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower())
    slug = re.sub(r"--+", "-", slug).strip("-")
    return slug[:SUBJECT_MAX_LENGTH]


def extract_subject(text: str, source_file: str) -> str:
    """Slug of the first sentence, or of the source file name when the sentence is unusable."""
    first_sentence = SENTENCE_END_PATTERN.split(text, maxsplit=1)[0].strip()
    cleaned = SUBJECT_PREFIX_PATTERN.sub("", first_sentence).strip()

    if 3 < len(cleaned) < 50:
        return slugify(cleaned)

    return re.sub(r"[^a-zA-Z0-9-]", "-", Path(source_file).stem).lower()


def build_filename(destination: RouteDestination, routing_context: RoutingContext) -> str:
    """
    Compose the file name (without extension).

    The date part only carries what the directory structure does not already
    encode: nothing for day, DD for month, MM-DD for year, YYMMDD for none.
    """
    date = routing_context.audio_date
    parts = []

    for option in destination.filename_options:
        if option == "date":
            if destination.structure == "month":
                parts.append(f"{date.day:02d}")
            elif destination.structure == "year":
                parts.append(f"{date.month:02d}-{date.day:02d}")
            elif destination.structure == "none":
                parts.append(f"{date.year % 100:02d}{date.month:02d}{date.day:02d}")
        elif option == "time":
            parts.append(f"{date.hour:02d}{date.minute:02d}")
        elif option == "subject":
            subject = extract_subject(routing_context.transcript_text, routing_context.source_file)
            if subject:
                parts.append(subject)

    return re.sub(r"--+", "-", "-".join(parts))


def build_output_path(destination: RouteDestination, routing_context: RoutingContext) -> str:
    """Full path of the Markdown file a routed transcript is written to."""
    directory = build_directory_path(expand_path(destination.path), destination.structure, routing_context.audio_date)
    return os.path.join(directory, build_filename(destination, routing_context) + OUTPUT_EXTENSION)
