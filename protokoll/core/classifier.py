"""
Signal-based transcript classification.

Each active project is checked for evidence in the transcript text:
explicit trigger phrases, sounds-like variants of the project name,
associated people and companies, and topic keywords. Every piece of
evidence becomes a RoutingSignal; a project's confidence is the sum of its
signal weights, capped at 1.0.
"""

import logging
from typing import List, Optional

from .context import ContextInstance
from .types import ClassificationResult, ProjectRoute, RoutingContext, RoutingSignal, SignalWeights

logger = logging.getLogger(__name__)

MAX_CONFIDENCE = 1.0


def detect_people(text: str, context: ContextInstance) -> List[str]:
    """Ids of people whose name or a sounds-like variant appears in lowercased text."""
    found = []
    for person in context.get_all_people():
        variants = [person.name, *person.sounds_like]
        if any(variant and variant.lower() in text for variant in variants):
            found.append(person.id)
    return found


def detect_companies(text: str, context: ContextInstance) -> List[str]:
    """Ids of companies whose name, full name or a sounds-like variant appears in lowercased text."""
    found = []
    for company in context.get_all_companies():
        variants = [company.name, company.full_name or "", *company.sounds_like]
        if any(variant and variant.lower() in text for variant in variants):
            found.append(company.id)
    return found


def calculate_confidence(signals: List[RoutingSignal]) -> float:
    """Sum of signal weights, capped at 1.0."""
    return min(sum(signal.weight for signal in signals), MAX_CONFIDENCE)


def build_reasoning(signals: List[RoutingSignal]) -> str:
    parts = []
    for signal in signals:
        if signal.type == "explicit":
            parts.append(f'explicit phrase: "{signal.value}"')
        elif signal.type == "sounds_like":
            parts.append(f'sounds like: "{signal.value}"')
        elif signal.type == "associated_person":
            parts.append(f"mentioned {signal.value} (associated)")
        elif signal.type == "associated_company":
            parts.append(f"mentioned {signal.value} (associated company)")
        else:
            parts.append(f"topic: {signal.value}")
    return ", ".join(parts)


def _first_present(text: str, phrases: List[str]) -> Optional[str]:
    for phrase in phrases:
        if phrase and phrase.lower() in text:
            return phrase
    return None


class SignalClassifier:
    """
    Scores projects against a transcript.

    People and companies are detected once per transcript from the context
    unless the routing context already carries them.
    """

    def __init__(self, context: ContextInstance, weights: Optional[SignalWeights] = None):
        self.context = context
        self.weights = weights or SignalWeights()

    def collect_signals(self, route: ProjectRoute, text: str, people: List[str], companies: List[str]) -> List[RoutingSignal]:
        """
        Gather the evidence for one project.

        Args:
            route: Project being scored
            text: Lowercased transcript text
            people: Person ids mentioned in the transcript
            companies: Company ids mentioned in the transcript

        Returns:
            Signals in the order explicit, sounds_like, people, companies, topics
        """
        signals: List[RoutingSignal] = []
        classification = route.classification

        phrase = _first_present(text, classification.explicit_phrases)
        if phrase is not None:
            signals.append(RoutingSignal(type="explicit", value=phrase, weight=self.weights.explicit, source="classification.explicit_phrases"))

        variant = _first_present(text, route.sounds_like)
        if variant is not None:
            signals.append(RoutingSignal(type="sounds_like", value=variant, weight=self.weights.sounds_like, source="sounds_like"))

        for person_id in classification.associated_people:
            if person_id in people:
                person = self.context.get_person(person_id)
                signals.append(
                    RoutingSignal(
                        type="associated_person",
                        value=person.name if person else person_id,
                        weight=self.weights.associated_person,
                        source="classification.associated_people",
                    )
                )

        for company_id in classification.associated_companies:
            if company_id in companies:
                company = self.context.get_company(company_id)
                signals.append(
                    RoutingSignal(
                        type="associated_company",
                        value=company.name if company else company_id,
                        weight=self.weights.associated_company,
                        source="classification.associated_companies",
                    )
                )

        for topic in classification.topics:
            if topic and topic.lower() in text:
                signals.append(RoutingSignal(type="topic", value=topic, weight=self.weights.topic, source="classification.topics"))

        return signals

    def classify(self, routing_context: RoutingContext, routes: List[ProjectRoute]) -> List[ClassificationResult]:
        """
        Score every active project that has at least one signal.

        Returns:
            Results by descending confidence; equal confidences keep the
            configured project order.
        """
        text = routing_context.transcript_text.lower()
        people = routing_context.detected_people
        if people is None:
            people = detect_people(text, self.context)
        companies = routing_context.detected_companies
        if companies is None:
            companies = detect_companies(text, self.context)

        results = []
        for route in routes:
            if not route.active:
                continue
            signals = self.collect_signals(route, text, people, companies)
            if not signals:
                continue
            results.append(
                ClassificationResult(
                    project_id=route.project_id,
                    confidence=calculate_confidence(signals),
                    signals=signals,
                    reasoning=build_reasoning(signals),
                )
            )
            logger.debug(f"Project '{route.project_id}' scored {results[-1].confidence:.2f} ({results[-1].reasoning})")

        # sorted() is stable, so ties stay in configured order
        return sorted(results, key=lambda result: result.confidence, reverse=True)
