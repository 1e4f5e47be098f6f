"""
Organization policy — read-only to the core, edited by admin tooling.

Named rule sets in constraint_policies:
  ObjectiveWeights     {"weather_fit": 0.3, ...}
  SchoolDuty           {"max_sorties_per_day": 6}
  WeatherMinima        {"templates": {"VFR_DUAL": {...}, "VFR_SOLO": {...}}}
  AircraftPerformance  {"safety_factor": 1.15,
                        "airports": {"VOBG": {"runway_length_ft": 10000,
                                              "density_altitude_ft": 4200}}}
"""
import logging
import math
from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy.orm import sessionmaker

from rostercore.errors import InputInvalid
from rostercore.models import ConstraintPolicy, Lesson

logger = logging.getLogger(__name__)

WEIGHT_KEYS = (
    "weather_fit",
    "instructor_balance",
    "travel_min",
    "aircraft_utilization",
    "student_continuity",
    "cancellation_risk",
)

DEFAULT_WEIGHTS = {
    "weather_fit": 0.30,
    "instructor_balance": 0.20,
    "travel_min": 0.15,
    "aircraft_utilization": 0.15,
    "student_continuity": 0.10,
    "cancellation_risk": 0.10,
}

DEFAULT_WEATHER_MINIMA = {
    "ceiling_ft": 3000,
    "vis_km": 5.0,
    "wind_max_kts": 20,
    "xwind_max_kts": 10,
}

DEFAULT_MAX_SORTIES_PER_DAY = 6


def validate_weights(weights: dict) -> dict:
    """Six non-negative weights summing to 1.0, or InputInvalid."""
    missing = [k for k in WEIGHT_KEYS if k not in weights]
    if missing:
        raise InputInvalid(f"Objective weights missing: {', '.join(missing)}")
    clean = {k: float(weights[k]) for k in WEIGHT_KEYS}
    if any(v < 0 for v in clean.values()):
        raise InputInvalid("Objective weights must be non-negative")
    if not math.isclose(sum(clean.values()), 1.0, abs_tol=1e-6):
        raise InputInvalid("Objective weights must sum to 1.0")
    return clean


class PolicyStore(ABC):

    @abstractmethod
    def get_weights(self, org_id: str) -> dict:
        ...

    @abstractmethod
    def get_weather_minima(self, org_id: str, lesson_id: Optional[str]) -> dict:
        ...

    @abstractmethod
    def get_duty_limit(self, org_id: str) -> int:
        ...

    @abstractmethod
    def get_airport_performance_rules(self, org_id: str) -> Optional[dict]:
        """None when the organization has no performance policy."""


class StaticPolicyStore(PolicyStore):
    """Fixed policy, for scripts and tests that don't need a database."""

    def __init__(self, weights: dict | None = None,
                 weather_minima: dict | None = None,
                 duty_limit: int = DEFAULT_MAX_SORTIES_PER_DAY,
                 airport_rules: dict | None = None):
        self.weights = validate_weights(weights) if weights else dict(DEFAULT_WEIGHTS)
        self.weather_minima = {**DEFAULT_WEATHER_MINIMA, **(weather_minima or {})}
        self.duty_limit = duty_limit
        self.airport_rules = airport_rules

    def get_weights(self, org_id):
        return dict(self.weights)

    def get_weather_minima(self, org_id, lesson_id):
        return dict(self.weather_minima)

    def get_duty_limit(self, org_id):
        return self.duty_limit

    def get_airport_performance_rules(self, org_id):
        return self.airport_rules


class SqlPolicyStore(PolicyStore):

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def _rules(self, org_id: str, policy_name: str) -> Optional[dict]:
        with self._session_factory() as db:
            row = (
                db.query(ConstraintPolicy)
                .filter(ConstraintPolicy.org_id == org_id,
                        ConstraintPolicy.policy_name == policy_name)
                .order_by(ConstraintPolicy.id.desc())
                .first()
            )
            return dict(row.rules or {}) if row else None

    def get_weights(self, org_id: str) -> dict:
        rules = self._rules(org_id, "ObjectiveWeights")
        if not rules:
            return dict(DEFAULT_WEIGHTS)
        try:
            return validate_weights(rules)
        except InputInvalid as e:
            logger.warning("org %s has invalid objective weights (%s); using defaults",
                           org_id, e.message)
            return dict(DEFAULT_WEIGHTS)

    def get_weather_minima(self, org_id: str, lesson_id: Optional[str]) -> dict:
        if not lesson_id:
            return dict(DEFAULT_WEATHER_MINIMA)
        with self._session_factory() as db:
            lesson = db.get(Lesson, lesson_id)
            requirements = dict(lesson.requirements or {}) if lesson else {}

        minima = requirements.get("weather_minima") or {}
        template = minima.get("template")
        if template:
            templates = (self._rules(org_id, "WeatherMinima") or {}).get("templates", {})
            if template not in templates:
                logger.warning("lesson %s references unknown minima template %s",
                               lesson_id, template)
            minima = {**templates.get(template, {}),
                      **{k: v for k, v in minima.items() if k != "template"}}
        return {**DEFAULT_WEATHER_MINIMA, **minima}

    def get_duty_limit(self, org_id: str) -> int:
        rules = self._rules(org_id, "SchoolDuty") or {}
        return int(rules.get("max_sorties_per_day") or DEFAULT_MAX_SORTIES_PER_DAY)

    def get_airport_performance_rules(self, org_id: str) -> Optional[dict]:
        return self._rules(org_id, "AircraftPerformance")
