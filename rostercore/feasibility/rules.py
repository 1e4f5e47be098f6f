"""
Feasibility rules.

Each rule is a pure function (candidate, context) -> ConstraintResult | None.
None means the rule was skipped because the candidate lacks its input.
Rules never read another rule's output and never touch a store; everything
they need is in the pre-fetched context. A context value is either the
looked-up data or an Unavailable marker.

Blocking rules fail closed when their data is unavailable. Weather is
advisory: forecasts can change before the sortie flies.
"""
from typing import Callable, Optional

from rostercore.fanout import is_unavailable
from rostercore.feasibility import report as ct
from rostercore.feasibility.report import ConstraintResult
from rostercore.models import BlockType
from rostercore.scheduling.availability import covers
from rostercore.schemas import CandidateAssignment

Rule = Callable[[CandidateAssignment, dict], Optional[ConstraintResult]]

RULES: list[Rule] = []


def rule(fn: Rule) -> Rule:
    RULES.append(fn)
    return fn


def _missing(value) -> bool:
    return value is None or is_unavailable(value)


def _requirements(lesson: dict) -> dict:
    return lesson.get("requirements") or {}


def _fail_closed(constraint_type: str, what: str) -> ConstraintResult:
    return ConstraintResult(
        constraint_type=constraint_type,
        passed=False,
        blocking=True,
        message=f"{what} could not be verified: data unavailable",
        summary=f"{what} unverifiable",
    )


# ── 1. Availability ──────────────────────────────────────────────────────────

@rule
def check_availability(c: CandidateAssignment, ctx: dict) -> Optional[ConstraintResult]:
    if not c.instructor_id:
        return None
    blocks = ctx.get("blocks")
    if is_unavailable(blocks):
        return _fail_closed(ct.AVAILABILITY, "Instructor availability")
    blocks = blocks or []

    unavailable = [b for b in blocks if b["type"] == BlockType.UNAVAILABLE]
    if unavailable:
        return ConstraintResult(
            ct.AVAILABILITY, passed=False, blocking=True,
            message="Instructor marked unavailable for this time slot",
            summary="Instructor unavailable",
            details={"instructor_id": c.instructor_id,
                     "block_ids": [b["id"] for b in unavailable]},
        )

    covering = [b for b in blocks
                if b["type"] == BlockType.AVAILABLE
                and covers(b["start_at"], b["end_at"], c.start_at, c.end_at)]
    if not covering:
        return ConstraintResult(
            ct.AVAILABILITY, passed=False, blocking=False,
            message="Instructor availability not explicitly set",
            summary="Instructor availability not confirmed",
            details={"instructor_id": c.instructor_id},
        )

    return ConstraintResult(
        ct.AVAILABILITY, passed=True, blocking=False,
        message="Instructor available",
        details={"instructor_id": c.instructor_id},
    )


# ── 2. Qualifications ────────────────────────────────────────────────────────

@rule
def check_qualifications(c: CandidateAssignment, ctx: dict) -> Optional[ConstraintResult]:
    if not (c.lesson_id and c.instructor_id):
        return None
    lesson, instructor = ctx.get("lesson"), ctx.get("instructor")
    if _missing(lesson) or _missing(instructor):
        return _fail_closed(ct.QUALIFICATIONS, "Instructor qualifications")

    required = list(_requirements(lesson).get("instructor_req") or [])
    held = set(instructor.get("qualifications") or [])
    missing = [q for q in required if q not in held]
    if missing:
        return ConstraintResult(
            ct.QUALIFICATIONS, passed=False, blocking=True,
            message="Instructor does not meet lesson requirements",
            summary="Instructor not qualified",
            details={"lesson_id": c.lesson_id, "instructor_id": c.instructor_id,
                     "missing": missing},
        )
    return ConstraintResult(
        ct.QUALIFICATIONS, passed=True, blocking=False,
        message="Instructor qualifications verified",
        details={"lesson_id": c.lesson_id, "instructor_id": c.instructor_id},
    )


# ── 3. Aircraft capabilities ─────────────────────────────────────────────────

@rule
def check_aircraft_capabilities(c: CandidateAssignment, ctx: dict) -> Optional[ConstraintResult]:
    if not (c.lesson_id and c.aircraft_id):
        return None
    lesson, aircraft = ctx.get("lesson"), ctx.get("aircraft")
    if _missing(lesson) or _missing(aircraft):
        return _fail_closed(ct.AIRCRAFT_CAPABILITIES, "Aircraft capabilities")

    required = list(_requirements(lesson).get("aircraft_req") or [])
    available = list(aircraft.get("capabilities") or [])
    missing = [r for r in required if r not in available]
    if missing:
        return ConstraintResult(
            ct.AIRCRAFT_CAPABILITIES, passed=False, blocking=True,
            message="Aircraft does not meet lesson capability requirements",
            summary="Aircraft capabilities insufficient",
            details={"aircraft_id": c.aircraft_id, "required": required,
                     "available": available, "missing": missing},
        )
    return ConstraintResult(
        ct.AIRCRAFT_CAPABILITIES, passed=True, blocking=False,
        message="Aircraft capabilities verified",
        details={"aircraft_id": c.aircraft_id, "capabilities": available},
    )


# ── 4. Airport / runway performance ──────────────────────────────────────────

@rule
def check_airport_performance(c: CandidateAssignment, ctx: dict) -> Optional[ConstraintResult]:
    if not c.aircraft_id:
        return None
    rules = ctx.get("airport_rules")
    if rules is None:
        return None  # org has no performance policy
    aircraft = ctx.get("aircraft")
    if is_unavailable(rules) or _missing(aircraft):
        return _fail_closed(ct.AIRPORT_PERFORMANCE, "Airport performance")

    airport = (rules.get("airports") or {}).get(c.airport_icao)
    if not airport:
        return ConstraintResult(
            ct.AIRPORT_PERFORMANCE, passed=True, blocking=False,
            message="No performance rule for airport",
            details={"airport_icao": c.airport_icao},
        )

    perf = aircraft.get("performance") or {}
    safety_factor = float(rules.get("safety_factor", 1.0))
    violations = []

    runway = airport.get("runway_length_ft")
    distances = [perf.get(k) for k in ("takeoff_distance_ft", "landing_distance_ft")]
    distances = [float(d) for d in distances if d is not None]
    if runway is not None and distances:
        required = max(distances) * safety_factor
        if required > float(runway):
            violations.append({"rule": "runway_length", "required_ft": round(required),
                               "available_ft": runway})

    density_altitude = airport.get("density_altitude_ft")
    ceiling = perf.get("max_density_altitude_ft")
    if density_altitude is not None and ceiling is not None \
            and float(density_altitude) > float(ceiling):
        violations.append({"rule": "density_altitude", "airport_ft": density_altitude,
                           "aircraft_max_ft": ceiling})

    if violations:
        return ConstraintResult(
            ct.AIRPORT_PERFORMANCE, passed=False, blocking=True,
            message="Airport does not meet aircraft performance requirements",
            summary="Airport performance constraints violated",
            details={"airport_icao": c.airport_icao, "violations": violations},
        )
    return ConstraintResult(
        ct.AIRPORT_PERFORMANCE, passed=True, blocking=False,
        message="Airport performance requirements met",
        details={"airport_icao": c.airport_icao},
    )


# ── 5. Weather minima (advisory) ─────────────────────────────────────────────

def weather_violations(weather: dict, minima: dict) -> list[str]:
    """Which minima the airport's current weather breaks. Missing values pass."""
    violations = []
    ceiling = weather.get("ceiling_ft")
    if ceiling is not None and ceiling < minima["ceiling_ft"]:
        violations.append("WX_BELOW_CEILING_MINIMA")
    vis = weather.get("visibility_km")
    if vis is not None and vis < minima["vis_km"]:
        violations.append("WX_BELOW_VIS_MINIMA")
    wind = weather.get("wind_kts")
    if wind is not None and wind > minima["wind_max_kts"]:
        violations.append("WX_WIND_EXCEEDED")
    xwind = weather.get("crosswind_kts")
    if xwind is not None and xwind > minima["xwind_max_kts"]:
        violations.append("WX_CROSSWIND_EXCEEDED")
    return violations


@rule
def check_weather_minima(c: CandidateAssignment, ctx: dict) -> Optional[ConstraintResult]:
    if not c.lesson_id:
        return None
    minima, env = ctx.get("minima"), ctx.get("environment")
    weather = None if _missing(env) else (env.get("weather") or {}).get(c.airport_icao)
    if _missing(minima) or not weather:
        return ConstraintResult(
            ct.WEATHER_MINIMA, passed=False, blocking=False,
            message="No current weather for airport; minima not checked",
            summary="Weather data unavailable",
            details={"airport_icao": c.airport_icao},
        )

    violations = weather_violations(weather, minima)
    forecast = {k: weather.get(k) for k in
                ("ceiling_ft", "visibility_km", "wind_kts", "crosswind_kts")}
    if violations:
        return ConstraintResult(
            ct.WEATHER_MINIMA, passed=False, blocking=False,
            message="Weather forecast may not meet VFR minima",
            summary="Weather conditions marginal",
            details={"minima": minima, "forecast": forecast, "violations": violations},
        )
    return ConstraintResult(
        ct.WEATHER_MINIMA, passed=True, blocking=False,
        message="Weather conditions acceptable",
        details={"minima": minima, "forecast": forecast},
    )


# ── 6. Duty rules ────────────────────────────────────────────────────────────

@rule
def check_duty_rules(c: CandidateAssignment, ctx: dict) -> Optional[ConstraintResult]:
    if not c.instructor_id:
        return None
    limit, today = ctx.get("duty_limit"), ctx.get("day_assignments")
    if _missing(limit) or is_unavailable(today):
        return _fail_closed(ct.DUTY_RULES, "Instructor duty limits")

    current = sum(1 for a in (today or []) if a["id"] != c.replaces_assignment_id)
    details = {"instructor_id": c.instructor_id, "current_sorties": current, "max": limit}
    if current >= limit:
        return ConstraintResult(
            ct.DUTY_RULES, passed=False, blocking=True,
            message=f"Instructor exceeds max sorties per day ({limit})",
            summary="Duty limits exceeded",
            details=details,
        )
    return ConstraintResult(
        ct.DUTY_RULES, passed=True, blocking=False,
        message=f"Instructor within duty limits ({current}/{limit})",
        details=details,
    )


# ── 7. Student prerequisites ─────────────────────────────────────────────────

@rule
def check_student_prerequisites(c: CandidateAssignment, ctx: dict) -> Optional[ConstraintResult]:
    if not c.lesson_id:
        return None
    lesson, student = ctx.get("lesson"), ctx.get("student")
    if _missing(lesson) or _missing(student):
        return _fail_closed(ct.STUDENT_PREREQUISITES, "Student prerequisites")

    required = list(_requirements(lesson).get("prerequisites") or [])
    completed = set(student.get("completed_milestones") or [])
    missing = [m for m in required if m not in completed]
    if missing:
        return ConstraintResult(
            ct.STUDENT_PREREQUISITES, passed=False, blocking=True,
            message="Student has not completed prerequisite milestones",
            summary="Prerequisites not met",
            details={"student_id": c.student_id, "lesson_id": c.lesson_id,
                     "missing": missing},
        )
    return ConstraintResult(
        ct.STUDENT_PREREQUISITES, passed=True, blocking=False,
        message="Student prerequisites verified",
        details={"student_id": c.student_id, "lesson_id": c.lesson_id},
    )
