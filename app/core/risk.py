import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from app.core.types import (
    AnomalyRecord,
    DetectorFailed,
    Position,
    Severity,
    TouristState,
    TouristStatus,
    utcnow,
)

logger = logging.getLogger(__name__)


@dataclass
class DispatchEvent:
    """Emitted once each time a tourist enters the emergency state"""
    tourist_id: str
    status: TouristStatus
    risk_score: float
    reason: str  # "panic" or "anomaly"
    anomalies: List[AnomalyRecord] = field(default_factory=list)
    position: Optional[Position] = None
    message: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "tourist_emergency",
            "tourist_id": self.tourist_id,
            "status": self.status.value,
            "risk_score": round(self.risk_score, 4),
            "reason": self.reason,
            "anomalies": [a.to_dict() for a in self.anomalies],
            "location": self.position.to_dict() if self.position else None,
            "message": self.message,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class RiskUpdate:
    tourist_id: str
    previous_status: TouristStatus
    status: TouristStatus
    risk_score: float
    failures: List[DetectorFailed] = field(default_factory=list)
    dispatch: Optional[DispatchEvent] = None

    @property
    def escalated(self) -> bool:
        return self.status.rank > self.previous_status.rank

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tourist_id": self.tourist_id,
            "previous_status": self.previous_status.value,
            "status": self.status.value,
            "risk_score": round(self.risk_score, 4),
            "escalated": self.escalated,
            "detector_failures": [f.to_dict() for f in self.failures],
            "dispatched": self.dispatch is not None,
        }


def candidate_status(records: Iterable[AnomalyRecord], panic: bool = False) -> TouristStatus:
    severities = {r.severity for r in records}
    if panic or Severity.HIGH in severities:
        return TouristStatus.EMERGENCY
    if Severity.MEDIUM in severities:
        return TouristStatus.AT_RISK
    return TouristStatus.SAFE


def _enter_status(state: TouristState, status: TouristStatus, reason: str,
                  records: List[AnomalyRecord], message: Optional[str] = None) -> Optional[DispatchEvent]:
    if status == TouristStatus.EMERGENCY and not state.emergency_dispatched:
        state.emergency_dispatched = True
        logger.critical(f"Tourist {state.id} entered emergency ({reason}), risk {state.risk_score:.2f}")
        return DispatchEvent(
            tourist_id=state.id,
            status=status,
            risk_score=state.risk_score,
            reason=reason,
            anomalies=list(records),
            position=state.current_position,
            message=message,
        )
    return None


def merge_anomalies(
    state: TouristState,
    records: Iterable[AnomalyRecord],
    failures: Iterable[DetectorFailed] = (),
    panic: bool = False,
) -> RiskUpdate:
    """
    Fold one detection cycle into the tourist's risk state.

    The risk score is the strongest single signal, never a sum. Status only
    escalates here; going back down needs acknowledge().
    """
    records = [r for r in records if r.tourist_id == state.id]
    previous = state.status

    if records:
        state.risk_score = max(r.risk_score for r in records)
    if panic:
        state.risk_score = 1.0

    candidate = candidate_status(records, panic=panic)
    if candidate.rank > state.status.rank:
        state.status = candidate
        logger.info(f"Tourist {state.id} escalated {previous.value} -> {candidate.value}")

    dispatch = None
    if state.status == TouristStatus.EMERGENCY:
        dispatch = _enter_status(state, state.status, "panic" if panic else "anomaly", records)

    return RiskUpdate(
        tourist_id=state.id,
        previous_status=previous,
        status=state.status,
        risk_score=state.risk_score,
        failures=list(failures),
        dispatch=dispatch,
    )


def trigger_panic(state: TouristState, message: Optional[str] = None) -> RiskUpdate:
    """Explicit panic signal from the client: immediate emergency"""
    previous = state.status
    state.status = TouristStatus.EMERGENCY
    state.risk_score = 1.0
    state.touch()
    dispatch = _enter_status(state, TouristStatus.EMERGENCY, "panic", [], message=message)
    return RiskUpdate(
        tourist_id=state.id,
        previous_status=previous,
        status=state.status,
        risk_score=state.risk_score,
        dispatch=dispatch,
    )


def acknowledge(state: TouristState, status: TouristStatus = TouristStatus.SAFE,
                risk_score: Optional[float] = None) -> RiskUpdate:
    """
    Operator acknowledgement; the only way a status goes down. Re-arms the
    emergency dispatch for the next transition.
    """
    previous = state.status
    if status.rank > previous.rank:
        raise ValueError(f"Acknowledgement cannot raise status from {previous.value} to {status.value}")

    state.status = status
    if status != TouristStatus.EMERGENCY:
        state.emergency_dispatched = False
    if risk_score is not None:
        state.risk_score = max(0.0, min(1.0, risk_score))
    elif status == TouristStatus.SAFE:
        state.risk_score = 0.0

    logger.info(f"Tourist {state.id} acknowledged {previous.value} -> {status.value}")
    return RiskUpdate(
        tourist_id=state.id,
        previous_status=previous,
        status=state.status,
        risk_score=state.risk_score,
    )
