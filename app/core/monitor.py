import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

from app.config import Settings, settings as default_settings
from app.core.analytics import Bounds, SpatialAggregator, TouristCluster
from app.core.anomaly_detection import (
    DetectionContext,
    DetectionReport,
    detect_anomalies,
    detect_for_tourist,
)
from app.core.exceptions import UnknownTourist
from app.core.geofencing import GeofenceEngine
from app.core.risk import RiskUpdate, acknowledge, merge_anomalies, trigger_panic
from app.core.types import (
    AnomalyRecord,
    DetectorFailed,
    Position,
    TouristState,
    TouristStatus,
    Vitals,
    ZoneMatch,
    ensure_utc,
    utcnow,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TouristRegistry:
    """
    Tourist states with one lock per tourist id. Updates for the same
    tourist are serialized; different tourists never wait on each other.
    """

    def __init__(self, history_limit: int = 100):
        self.history_limit = history_limit
        self._states: Dict[str, TouristState] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def __contains__(self, tourist_id: str) -> bool:
        return tourist_id in self._states

    def __len__(self) -> int:
        return len(self._states)

    def register(self, tourist_id: str, **attrs: Any) -> TouristState:
        """Create or update a tourist's externally-owned attributes"""
        with self._registry_lock:
            lock = self._locks.setdefault(tourist_id, threading.Lock())
        with lock:
            state = self._states.get(tourist_id)
            if state is None:
                state = TouristState(id=tourist_id, history_limit=self.history_limit, **attrs)
                with self._registry_lock:
                    self._states[tourist_id] = state
                logger.info(f"Registered tourist {tourist_id}")
            else:
                for name, value in attrs.items():
                    if isinstance(value, datetime):
                        value = ensure_utc(value)
                    setattr(state, name, value)
            return state.snapshot()

    def update(self, tourist_id: str, fn: Callable[[TouristState], T]) -> T:
        """Apply fn to the live state while holding that tourist's lock"""
        lock = self._locks.get(tourist_id)
        if lock is None:
            raise UnknownTourist(tourist_id)
        with lock:
            state = self._states.get(tourist_id)
            if state is None:
                raise UnknownTourist(tourist_id)
            return fn(state)

    def get_snapshot(self, tourist_id: str) -> TouristState:
        return self.update(tourist_id, lambda state: state.snapshot())

    def ids(self) -> List[str]:
        with self._registry_lock:
            return list(self._states)

    def snapshots(self) -> List[TouristState]:
        return [self.get_snapshot(tourist_id) for tourist_id in self.ids()]


@dataclass
class IngestResult:
    tourist_id: str
    zones: List[ZoneMatch] = field(default_factory=list)
    anomalies: List[AnomalyRecord] = field(default_factory=list)
    failures: List[DetectorFailed] = field(default_factory=list)
    risk: Optional[RiskUpdate] = None

    @property
    def alerts(self) -> List[ZoneMatch]:
        return GeofenceEngine.alerts(self.zones)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tourist_id": self.tourist_id,
            "zones": [z.to_dict() for z in self.zones],
            "alerts_triggered": [z.to_dict() for z in self.alerts],
            "anomalies": [a.to_dict() for a in self.anomalies],
            "detector_failures": [f.to_dict() for f in self.failures],
            "risk": self.risk.to_dict() if self.risk else None,
        }


@dataclass
class BatchResult:
    report: DetectionReport
    updates: List[RiskUpdate] = field(default_factory=list)

    @property
    def dispatches(self):
        return [u.dispatch for u in self.updates if u.dispatch is not None]


class SafetyMonitor:
    """Wires geofencing, anomaly detection and risk aggregation per update"""

    def __init__(
        self,
        config: Settings = default_settings,
        geofence: Optional[GeofenceEngine] = None,
        context: Optional[DetectionContext] = None,
        aggregator: Optional[SpatialAggregator] = None,
        registry: Optional[TouristRegistry] = None,
    ):
        self.config = config
        self.geofence = geofence or GeofenceEngine()
        self.context = context or DetectionContext.from_settings(config)
        self.aggregator = aggregator or SpatialAggregator(
            grid_size=config.HEATMAP_GRID_SIZE,
            heatmap_radius=config.HEATMAP_RADIUS_DEG,
            epsilon=config.HEATMAP_EPSILON,
            cluster_radius=config.CLUSTER_RADIUS_DEG,
        )
        self.registry = registry or TouristRegistry(history_limit=config.HISTORY_RETENTION)

    def ingest_update(
        self,
        tourist_id: str,
        position: Position,
        vitals: Optional[Vitals] = None,
        now: Optional[datetime] = None,
    ) -> IngestResult:
        """
        Record a client ping and run the full per-update pipeline.

        Geofencing and detection see the state exactly as it was after this
        update was applied; the risk merge is applied under the same lock so
        concurrent pings from one tourist cannot interleave.
        """
        now = ensure_utc(now) or utcnow()

        def apply(state: TouristState) -> IngestResult:
            state.record_position(position)
            if vitals is not None:
                state.vitals = vitals
            state.touch(now)
            snapshot = state.snapshot()

            zones = self.geofence.evaluate(position, tourist_id=tourist_id)
            report = detect_for_tourist(snapshot, self.context, now)
            risk = merge_anomalies(state, report.anomalies, report.failures)
            return IngestResult(
                tourist_id=tourist_id,
                zones=zones,
                anomalies=report.anomalies,
                failures=report.failures,
                risk=risk,
            )

        if tourist_id not in self.registry:
            self.registry.register(tourist_id)
        result = self.registry.update(tourist_id, apply)

        if result.alerts:
            logger.info(f"Tourist {tourist_id} triggered {len(result.alerts)} zone alert(s)")
        return result

    def detect_anomalies(self, now: Optional[datetime] = None) -> BatchResult:
        """
        Batch cycle over every registered tourist. Each tourist is snapshotted,
        scored and merged while holding that tourist's lock, so a ping cannot
        land between detection and merge.
        """
        now = ensure_utc(now) or utcnow()
        batch = BatchResult(report=DetectionReport())

        def apply(state: TouristState) -> RiskUpdate:
            report = detect_for_tourist(state.snapshot(), self.context, now)
            batch.report.extend(report)
            return merge_anomalies(state, report.anomalies, report.failures)

        for tourist_id in self.registry.ids():
            batch.updates.append(self.registry.update(tourist_id, apply))

        logger.info(f"Detection cycle: {len(batch.report.anomalies)} anomalies, "
                    f"{len(batch.report.failures)} detector failures")
        return batch

    def scan_anomalies(self, now: Optional[datetime] = None) -> DetectionReport:
        """Run the detectors over current snapshots without touching risk state"""
        now = ensure_utc(now) or utcnow()
        return detect_anomalies(self.registry.snapshots(), self.context, now)

    def trigger_panic(self, tourist_id: str, position: Optional[Position] = None,
                      message: Optional[str] = None) -> RiskUpdate:
        def apply(state: TouristState) -> RiskUpdate:
            if position is not None:
                state.record_position(position)
            return trigger_panic(state, message=message)

        return self.registry.update(tourist_id, apply)

    def acknowledge(self, tourist_id: str, status: TouristStatus = TouristStatus.SAFE,
                    risk_score: Optional[float] = None) -> RiskUpdate:
        return self.registry.update(tourist_id, lambda state: acknowledge(state, status, risk_score))

    def recompute_occupancy(self) -> Dict[str, int]:
        positions = {
            s.id: s.current_position
            for s in self.registry.snapshots()
            if s.current_position is not None
        }
        return self.geofence.recompute_occupancy(positions)

    def heatmap(self, bounds: Bounds, grid_size: Optional[int] = None) -> Dict[str, Any]:
        return self.aggregator.dashboard_view(bounds, self.registry.snapshots(), grid_size)

    def clusters(self, tourists: Optional[Iterable[TouristState]] = None) -> List[TouristCluster]:
        return self.aggregator.clusters(list(tourists) if tourists is not None else self.registry.snapshots())
