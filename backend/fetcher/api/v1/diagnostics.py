from fastapi import APIRouter, Depends, Path, Query

from ...schemas.models import CacheEvictRead, DiagnosticsRead, LogsRead
from ...utils.admission import AdmissionController
from ...utils.log_buffer import acquisition_logs
from ...utils.orchestrator import AudioAcquisitionOrchestrator
from ..deps import get_admission, get_orchestrator

router = APIRouter(prefix="/diagnostics", tags=["diagnostics"])


@router.get("", response_model=DiagnosticsRead)
def get_diagnostics(
    orchestrator: AudioAcquisitionOrchestrator = Depends(get_orchestrator),
    admission: AdmissionController = Depends(get_admission),
):
    """Strategy order as the next acquisition would try it, plus cache and capacity state."""
    data = orchestrator.diagnostics()
    data["in_flight"] = admission.in_flight
    data["capacity"] = admission.capacity
    return data


@router.get("/logs", response_model=LogsRead)
def get_logs(count: int = Query(100, ge=1, le=5000)):
    lines = acquisition_logs.get_lines(count=count)
    return {"lines": lines, "count": len(lines), "max_lines": acquisition_logs.max_lines}


@router.delete("/cache/{video_id}", response_model=CacheEvictRead)
def evict_cached_format(
    video_id: str = Path(..., min_length=1, max_length=64),
    orchestrator: AudioAcquisitionOrchestrator = Depends(get_orchestrator),
):
    return {"video_id": video_id, "evicted": orchestrator.cache.evict(video_id)}
