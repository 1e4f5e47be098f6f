"""
FastAPI app — roster core endpoints. Org scope comes from the X-Org-Id header.

  POST /feasibility/check
  POST /scoring/score
  POST /disruptions
  GET  /assignments/{id}/alternatives
  POST /alternatives/{id}/accept | /reject
  POST /assignments, GET /assignments, GET /assignments/{id}
  POST /assignments/{id}/confirm | /cancel | /complete
  POST /roster/solve
  POST /environment/snapshots, POST /environment/metar
"""
import logging
from datetime import datetime
from functools import lru_cache
from typing import Optional

from fastapi import Body, Depends, FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse

from rostercore.database import SessionLocal, init_db
from rostercore.errors import InputInvalid, RosterCoreError
from rostercore.models import AlternativeStatus
from rostercore.service import RosterService

logger = logging.getLogger(__name__)

app = FastAPI(title="Roster Core API", version="1.0.0")

STATUS_BY_KIND = {
    "input_invalid": 400,
    "unauthorized": 401,
    "not_found": 404,
    "persistence_failure": 500,
    "data_unavailable": 503,
}


@lru_cache
def get_service() -> RosterService:
    return RosterService(SessionLocal)


def org_scope(x_org_id: Optional[str] = Header(default=None)) -> Optional[str]:
    return x_org_id.strip() if x_org_id else None


@app.on_event("startup")
def startup():
    init_db()
    logger.info("database initialized")


@app.exception_handler(RosterCoreError)
def roster_error(request: Request, exc: RosterCoreError):
    status = STATUS_BY_KIND.get(exc.kind, 500)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status, content=exc.to_dict())


# ── Feasibility & scoring ─────────────────────────────────────────────────────

@app.post("/feasibility/check")
def feasibility_check(candidate: dict = Body(...),
                      org_id: Optional[str] = Depends(org_scope),
                      service: RosterService = Depends(get_service)):
    """Seven-rule feasibility report for a candidate sortie. No side effects."""
    return service.check_feasibility(org_id, candidate).to_dict()


@app.post("/scoring/score")
def scoring_score(body: dict = Body(...),
                  org_id: Optional[str] = Depends(org_scope),
                  service: RosterService = Depends(get_service)):
    """
    Six-dimension score. Optional "weights" in the body override the org policy
    and must sum to 1.0.
    """
    weights = body.pop("weights", None)
    return service.score_assignment(org_id, body, weights).to_dict()


# ── Disruptions & alternatives ────────────────────────────────────────────────

@app.post("/disruptions")
def disruptions(event: dict = Body(...),
                org_id: Optional[str] = Depends(org_scope),
                service: RosterService = Depends(get_service)):
    return service.handle_disruption(org_id, event)


@app.get("/assignments/{assignment_id}/alternatives")
def alternatives(assignment_id: str,
                 status: Optional[AlternativeStatus] = None,
                 org_id: Optional[str] = Depends(org_scope),
                 service: RosterService = Depends(get_service)):
    return service.list_alternatives(org_id, assignment_id, status)


@app.post("/alternatives/{alternative_id}/accept")
def accept_alternative(alternative_id: str,
                       org_id: Optional[str] = Depends(org_scope),
                       service: RosterService = Depends(get_service)):
    return service.accept_alternative(org_id, alternative_id)


@app.post("/alternatives/{alternative_id}/reject")
def reject_alternative(alternative_id: str,
                       org_id: Optional[str] = Depends(org_scope),
                       service: RosterService = Depends(get_service)):
    return service.reject_alternative(org_id, alternative_id)


# ── Assignments ───────────────────────────────────────────────────────────────

@app.post("/assignments", status_code=201)
def create_assignment(candidate: dict = Body(...),
                      org_id: Optional[str] = Depends(org_scope),
                      service: RosterService = Depends(get_service)):
    return service.create_assignment(org_id, candidate)


@app.get("/assignments")
def query_assignments(student_id: Optional[str] = None,
                      instructor_id: Optional[str] = None,
                      aircraft_id: Optional[str] = None,
                      airport_icao: Optional[str] = None,
                      status: Optional[list[str]] = Query(default=None),
                      start_from: Optional[datetime] = None,
                      start_before: Optional[datetime] = None,
                      limit: Optional[int] = Query(default=None, ge=1, le=500),
                      org_id: Optional[str] = Depends(org_scope),
                      service: RosterService = Depends(get_service)):
    return service.query_assignments(
        org_id, student_id=student_id, instructor_id=instructor_id,
        aircraft_id=aircraft_id, airport_icao=airport_icao, statuses=status,
        start_from=start_from, start_before=start_before, limit=limit,
    )


@app.get("/assignments/{assignment_id}")
def get_assignment(assignment_id: str,
                   org_id: Optional[str] = Depends(org_scope),
                   service: RosterService = Depends(get_service)):
    return service.get_assignment(org_id, assignment_id)


@app.post("/assignments/{assignment_id}/confirm")
def confirm_assignment(assignment_id: str,
                       org_id: Optional[str] = Depends(org_scope),
                       service: RosterService = Depends(get_service)):
    return service.confirm_assignment(org_id, assignment_id)


@app.post("/assignments/{assignment_id}/cancel")
def cancel_assignment(assignment_id: str,
                      reason: Optional[str] = None,
                      org_id: Optional[str] = Depends(org_scope),
                      service: RosterService = Depends(get_service)):
    return service.cancel_assignment(org_id, assignment_id, reason)


@app.post("/assignments/{assignment_id}/complete")
def complete_assignment(assignment_id: str,
                        org_id: Optional[str] = Depends(org_scope),
                        service: RosterService = Depends(get_service)):
    return service.complete_assignment(org_id, assignment_id)


# ── Solver ────────────────────────────────────────────────────────────────────

@app.post("/roster/solve")
def roster_solve(body: dict = Body(...),
                 org_id: Optional[str] = Depends(org_scope),
                 service: RosterService = Depends(get_service)):
    """
    Greedy roster for a batch of students. Body:
      student_ids, instructor_ids, aircraft_ids, slots [{start_at, end_at}],
      airport_icao, lesson_by_student {student_id: lesson_id}, max_iterations
    """
    allowed = {"student_ids", "instructor_ids", "aircraft_ids", "slots",
               "airport_icao", "lesson_by_student", "max_iterations"}
    request = {k: v for k, v in body.items() if k in allowed}
    request.setdefault("aircraft_ids", [])
    missing = [k for k in ("student_ids", "instructor_ids", "slots", "airport_icao")
               if k not in request]
    if missing:
        raise InputInvalid(f"Missing fields: {', '.join(missing)}")
    return service.solve_roster(org_id, **request)


# ── Environment ───────────────────────────────────────────────────────────────

@app.post("/environment/snapshots", status_code=201)
def environment_snapshot(snapshot: dict = Body(...),
                         org_id: Optional[str] = Depends(org_scope),
                         service: RosterService = Depends(get_service)):
    return {"snapshot_id": service.ingest_snapshot(org_id, snapshot)}


@app.post("/environment/metar", status_code=201)
def environment_metar(icao: str = Body(...), raw: Optional[str] = Body(default=None),
                      org_id: Optional[str] = Depends(org_scope),
                      service: RosterService = Depends(get_service)):
    """Store a raw METAR, or fetch the current one when `raw` is omitted."""
    return {"snapshot_id": service.ingest_metar(org_id, icao, raw)}


# ── Health check ──────────────────────────────────────────────────────────────

@app.get("/")
def root():
    return {
        "service": "Roster Core API",
        "version": "1.0.0",
        "endpoints": ["/feasibility/check", "/scoring/score", "/disruptions",
                      "/assignments", "/roster/solve", "/environment/snapshots"],
    }
