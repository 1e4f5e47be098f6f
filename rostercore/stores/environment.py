"""
Environment snapshots — latest weather / NOTAM / traffic picture per organization.

Snapshot layout (all keyed by ICAO):
  weather  {"VOBG": {"ceiling_ft": 2500, "visibility_km": 8.0, "wind_kts": 12,
                     "crosswind_kts": 4, "conditions": ["-RA"],
                     "forecast": {"stable": true, "conditions": []}}}
  notams   {"VOBG": ["RWY 09/27 CLSD 0800-1200", ...]}
  traffic  {"VOBG": {"density": "medium"}}

Snapshots arrive from an external feed (ingest) or from raw METAR text,
which is parsed here. Live METAR comes from aviationweather.gov (free, no key).
"""
import json
import logging
import re
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy.orm import sessionmaker

from rostercore.config import settings
from rostercore.errors import DataUnavailable
from rostercore.models import EnvironmentSnapshot
from rostercore.schemas import SnapshotIn, utcnow

logger = logging.getLogger(__name__)


class EnvironmentStore(ABC):

    @abstractmethod
    def latest(self, org_id: str) -> Optional[dict]:
        """Most recent snapshot as {"captured_at", "weather", "notams", "traffic"}."""


class SqlEnvironmentStore(EnvironmentStore):

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def latest(self, org_id: str) -> Optional[dict]:
        with self._session_factory() as db:
            row = (
                db.query(EnvironmentSnapshot)
                .filter(EnvironmentSnapshot.org_id == org_id)
                .order_by(EnvironmentSnapshot.captured_at.desc(),
                          EnvironmentSnapshot.id.desc())
                .first()
            )
            if row is None:
                return None
            return {
                "captured_at": row.captured_at,
                "weather": dict(row.weather or {}),
                "notams": dict(row.notams or {}),
                "traffic": dict(row.traffic or {}),
            }

    def ingest(self, org_id: str, snapshot: SnapshotIn) -> int:
        with self._session_factory() as db, db.begin():
            row = EnvironmentSnapshot(
                org_id=org_id,
                captured_at=snapshot.captured_at or utcnow(),
                weather=snapshot.weather,
                notams=snapshot.notams,
                traffic=snapshot.traffic,
            )
            db.add(row)
            db.flush()
            logger.info("org %s: snapshot %s ingested (%d airports)",
                        org_id, row.id, len(snapshot.weather))
            return row.id

    def ingest_metar(self, org_id: str, icao: str, raw: str) -> int:
        """
        Parse one METAR and store it as a new snapshot that carries
        everything else over from the previous one.
        """
        icao = icao.upper()
        previous = self.latest(org_id) or {"weather": {}, "notams": {}, "traffic": {}}
        weather = dict(previous["weather"])
        # forecast block comes from TAF feeds; keep it if we had one
        forecast = (weather.get(icao) or {}).get("forecast")
        weather[icao] = parse_metar(raw)
        if forecast is not None:
            weather[icao]["forecast"] = forecast
        return self.ingest(org_id, SnapshotIn(
            weather=weather,
            notams=previous["notams"],
            traffic=previous["traffic"],
        ))

    def refresh_metar(self, org_id: str, icao: str) -> int:
        return self.ingest_metar(org_id, icao, fetch_metar(icao))


# ── Fetcher ───────────────────────────────────────────────────────────────────

def fetch_metar(icao: str, timeout: float | None = None) -> str:
    """Fetch raw METAR string from aviationweather.gov."""
    url = (
        f"https://aviationweather.gov/api/data/metar"
        f"?ids={icao.upper()}&format=json&taf=false"
    )
    req = urllib.request.Request(url, headers={"User-Agent": "rostercore/1.0"})
    try:
        with urllib.request.urlopen(
            req, timeout=timeout or settings.lookup_timeout_seconds
        ) as resp:
            data = json.loads(resp.read().decode())
    except (urllib.error.URLError, OSError, ValueError) as e:
        logger.warning("METAR fetch failed for %s: %s", icao, e)
        raise DataUnavailable(f"Weather feed unavailable for {icao.upper()}") from e

    if not data:
        raise DataUnavailable(f"No METAR data returned for {icao.upper()}")
    return data[0].get("rawOb", "") or data[0].get("metar", "")


# ── Parser ────────────────────────────────────────────────────────────────────

_WX_TOKEN = re.compile(
    r"(?:[+-]|VC)?(?:MI|PR|BC|DR|BL|SH|TS|FZ)?"
    r"(?:DZ|RA|SN|SG|IC|PL|GR|GS|UP|BR|FG|FU|VA|DU|SA|HZ|PY|PO|SQ|FC|SS|DS)*"
)


def parse_metar(raw: str) -> dict:
    """
    Parse the fields scoring and feasibility use from a raw METAR string.
    Visibility is reported in km.
    """
    wind_kts, crosswind_kts = _parse_wind(raw)
    return {
        "ceiling_ft": _parse_ceiling(raw),
        "visibility_km": _parse_visibility(raw),
        "wind_kts": wind_kts,
        "crosswind_kts": crosswind_kts,
        "conditions": _parse_conditions(raw),
        "raw": raw,
        "parsed_at": utcnow().isoformat(),
    }


def _parse_ceiling(raw: str) -> Optional[int]:
    """
    Lowest BKN / OVC / VV layer → ceiling in feet.
    Returns None if sky clear (SKC/CLR/CAVOK).
    """
    if any(x in raw for x in ("SKC", "CLR", "CAVOK", "NSC")):
        return None  # unlimited

    matches = re.findall(r"\b(BKN|OVC|VV)(\d{3})", raw)
    if not matches:
        return None

    # each unit = 100 ft
    return min(int(h) * 100 for _, h in matches)


def _parse_visibility(raw: str) -> Optional[float]:
    """
    Visibility in km.
    Handles: 'CAVOK', '9999' / '4000' (meters), '10SM', '1/2SM', '1 1/2SM'.
    """
    if "CAVOK" in raw:
        return 10.0

    sm_match = re.search(r"\b(\d+\s+\d+/\d+|\d+/\d+|\d+)SM\b", raw)
    if sm_match:
        vis_str = sm_match.group(1).strip()
        if "/" in vis_str:
            parts = vis_str.split()
            whole = float(parts[0]) if len(parts) == 2 else 0.0
            num, den = parts[-1].split("/")
            miles = whole + float(num) / float(den)
        else:
            miles = float(vis_str)
        return round(miles * 1.609, 1)

    m_match = re.search(r"(?<!\S)(\d{4})(?:NDV)?(?!\S)", raw)
    if m_match:
        meters = int(m_match.group(1))
        if meters == 9999:
            return 10.0
        return round(meters / 1000, 1)

    return None


def _parse_wind(raw: str) -> tuple[Optional[int], Optional[int]]:
    """
    Returns (wind_kts, crosswind_kts).
    Crosswind is estimated as ~30% of total wind (no runway heading here).
    """
    match = re.search(r"\b\d{3}(\d{2,3})(?:G\d{2,3})?KT", raw)
    if match:
        wind = int(match.group(1))
        return wind, int(wind * 0.3)

    vrb = re.search(r"\bVRB(\d{2})KT", raw)
    if vrb:
        spd = int(vrb.group(1))
        return spd, spd  # treat all as crosswind (worst case)

    return None, None


def _parse_conditions(raw: str) -> list[str]:
    """Present-weather groups, e.g. ['+TSRA', 'BR']. Skips station and time."""
    conditions = []
    for token in raw.split()[2:]:
        if token == "RMK":
            break
        if token.lstrip("+-") in ("", "VC"):
            continue
        if _WX_TOKEN.fullmatch(token):
            conditions.append(token)
    return conditions
