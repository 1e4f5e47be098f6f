"""
The six objective dimensions. Each scorer reads a pre-fetched context and
returns a value clamped to [0, 1]; higher is better.
"""
import math
import re
from collections import Counter
from typing import Optional

from rostercore.fanout import is_unavailable
from rostercore.schemas import CandidateAssignment

NEUTRAL = 0.5

# distance used when either airport has no coordinates
PLACEHOLDER_DISTANCE_KM = 50.0
# fixed allowance until historical weather is tracked
WEATHER_VOLATILITY = 0.1

_RUNWAY_CLOSURE = re.compile(r"\b(RWY|RUNWAY|CLSD|CLOSED)\b", re.IGNORECASE)


def clamp(score: float) -> float:
    return max(0.0, min(1.0, score))


def _usable(value) -> bool:
    return value is not None and not is_unavailable(value)


def _has_ts(conditions) -> bool:
    return any("TS" in str(c).upper() for c in (conditions or []))


def weather_fit(c: CandidateAssignment, ctx: dict) -> float:
    env, minima = ctx.get("environment"), ctx.get("minima")
    if not _usable(env) or not _usable(minima):
        return NEUTRAL
    weather = (env.get("weather") or {}).get(c.airport_icao)
    if not weather:
        return NEUTRAL

    score = 1.0
    ceiling = weather.get("ceiling_ft")
    if ceiling is not None and ceiling < minima["ceiling_ft"]:
        score -= 0.3
    vis = weather.get("visibility_km")
    if vis is not None and vis < minima["vis_km"]:
        score -= 0.3
    wind = weather.get("wind_kts")
    if wind is not None and wind > minima["wind_max_kts"]:
        score -= 0.2
    xwind = weather.get("crosswind_kts")
    if xwind is not None and xwind > minima["xwind_max_kts"]:
        score -= 0.2

    forecast = weather.get("forecast") or {}
    if forecast.get("stable") is True:
        score += 0.1
    if _has_ts(weather.get("conditions")) or _has_ts(forecast.get("conditions")):
        score -= 0.4
    return clamp(score)


def instructor_balance(c: CandidateAssignment, ctx: dict) -> float:
    if not c.instructor_id:
        return NEUTRAL
    week = ctx.get("week_assignments")
    if not _usable(week):
        return NEUTRAL
    counts = Counter(a["instructor_id"] for a in week if a.get("instructor_id"))
    if not counts:
        return 1.0
    mean = sum(counts.values()) / len(counts)
    deviation = abs(counts.get(c.instructor_id, 0) - mean) / (mean + 1)
    return clamp(1 - deviation * 0.5)


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    r = 6371.0
    p1, p2 = math.radians(lat1), math.radians(lat2)
    dp = p2 - p1
    dl = math.radians(lon2 - lon1)
    a = math.sin(dp / 2) ** 2 + math.cos(p1) * math.cos(p2) * math.sin(dl / 2) ** 2
    return 2 * r * math.asin(math.sqrt(a))


def _coords(airport) -> Optional[tuple[float, float]]:
    if not _usable(airport) or not airport:
        return None
    lat, lon = airport.get("latitude"), airport.get("longitude")
    if lat is None or lon is None:
        return None
    return float(lat), float(lon)


def travel_min(c: CandidateAssignment, ctx: dict) -> float:
    if not c.instructor_id:
        return NEUTRAL
    instructor = ctx.get("instructor")
    if not _usable(instructor) or not instructor:
        return NEUTRAL
    base = (instructor.get("base_airport") or "").upper()
    if not base or base == c.airport_icao:
        return 1.0

    here, there = _coords(ctx.get("airport")), _coords(ctx.get("base_airport"))
    if here and there:
        distance = haversine_km(*here, *there)
    else:
        distance = PLACEHOLDER_DISTANCE_KM
    return clamp(1 - distance / 100)


def utilization_band(hours_to_maintenance: Optional[float]) -> float:
    """Favour aircraft 50-100 h from inspection; nearly-due ones score low."""
    if hours_to_maintenance is None:
        return NEUTRAL
    if hours_to_maintenance < 50:
        return 0.3
    if hours_to_maintenance < 100:
        return 0.9
    if hours_to_maintenance < 200:
        return 0.7
    return 0.5


def aircraft_utilization(c: CandidateAssignment, ctx: dict) -> float:
    if not c.aircraft_id:
        return NEUTRAL
    aircraft = ctx.get("aircraft")
    if not _usable(aircraft) or not aircraft:
        return NEUTRAL
    due, flown = aircraft.get("next_inspection_hours"), aircraft.get("total_hours")
    if due is None:
        return NEUTRAL
    return utilization_band(float(due) - float(flown or 0))


def student_continuity(c: CandidateAssignment, ctx: dict) -> float:
    if not c.instructor_id:
        return NEUTRAL
    history = ctx.get("history")
    if not _usable(history):
        return NEUTRAL
    instructors = [a.get("instructor_id") for a in history]
    if not instructors:
        return 0.7
    # history is newest first, so ties go to the most recent instructor
    primary = Counter(instructors).most_common(1)[0][0]
    if primary == c.instructor_id:
        return 1.0
    switches = sum(1 for i in instructors if i != primary)
    return max(0.3, 1 - switches * 0.15)


def cancellation_risk(c: CandidateAssignment, ctx: dict) -> float:
    env = ctx.get("environment")
    score = 1.0
    if _usable(env) and env:
        notams = (env.get("notams") or {}).get(c.airport_icao) or []
        if len(notams) > 5:
            score -= 0.3
        elif len(notams) > 2:
            score -= 0.15
        if any(_RUNWAY_CLOSURE.search(str(n)) for n in notams):
            score -= 0.5

        density = ((env.get("traffic") or {}).get(c.airport_icao) or {}).get("density", "low")
        if density == "high":
            score -= 0.2
        elif density == "medium":
            score -= 0.1
    score -= WEATHER_VOLATILITY
    return clamp(score)


DIMENSIONS = {
    "weather_fit": weather_fit,
    "instructor_balance": instructor_balance,
    "travel_min": travel_min,
    "aircraft_utilization": aircraft_utilization,
    "student_continuity": student_continuity,
    "cancellation_risk": cancellation_risk,
}
