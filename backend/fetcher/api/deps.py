from fastapi import HTTPException, Request

from ..utils.admission import AdmissionController
from ..utils.orchestrator import AudioAcquisitionOrchestrator
from ..utils.transcoder import Mp3Transcoder


def get_orchestrator(request: Request) -> AudioAcquisitionOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Acquisition service is not initialised")
    return orchestrator


def get_admission(request: Request) -> AdmissionController:
    admission = getattr(request.app.state, "admission", None)
    if admission is None:
        raise HTTPException(status_code=503, detail="Acquisition service is not initialised")
    return admission


def get_transcoder(request: Request) -> Mp3Transcoder:
    transcoder = getattr(request.app.state, "transcoder", None)
    if transcoder is None:
        raise HTTPException(status_code=503, detail="Acquisition service is not initialised")
    return transcoder
