from dataclasses import asdict, dataclass, field
from typing import Any


AVAILABILITY = "availability"
QUALIFICATIONS = "qualifications"
AIRCRAFT_CAPABILITIES = "aircraft_capabilities"
AIRPORT_PERFORMANCE = "airport_performance"
WEATHER_MINIMA = "weather_minima"
DUTY_RULES = "duty_rules"
STUDENT_PREREQUISITES = "student_prerequisites"


@dataclass
class ConstraintResult:
    constraint_type: str
    passed: bool
    blocking: bool
    message: str
    # short line surfaced in blocking_issues / warnings when the rule fails
    summary: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def is_blocking_failure(self) -> bool:
        return self.blocking and not self.passed

    @property
    def is_warning(self) -> bool:
        return not self.blocking and not self.passed


@dataclass
class FeasibilityReport:
    feasible: bool
    constraints: list[ConstraintResult]
    blocking_issues: list[str]
    warnings: list[str]

    @classmethod
    def from_results(cls, results: list[ConstraintResult]) -> "FeasibilityReport":
        blocking = [r.summary or r.message for r in results if r.is_blocking_failure]
        warnings = [r.summary or r.message for r in results if r.is_warning]
        return cls(
            feasible=not blocking,
            constraints=results,
            blocking_issues=blocking,
            warnings=warnings,
        )

    def result_for(self, constraint_type: str) -> ConstraintResult | None:
        return next((r for r in self.constraints if r.constraint_type == constraint_type), None)

    def to_dict(self) -> dict:
        return asdict(self)
