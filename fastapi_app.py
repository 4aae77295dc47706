from __future__ import annotations

import logging
import threading
import uuid
from datetime import date
from typing import Callable, Dict, List, Optional

from fastapi import Depends, FastAPI, UploadFile, File, HTTPException, BackgroundTasks
from fastapi.responses import Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

import config
from analytics import compute_analytics
from engine import FileQueue, PipelineSimulator
from export import EmptyExportError, export_csv, export_excel, EXPORT_FILE_NAME
from insights import generate_analytics_insights
from models import STATUS_ALL, OMRFile
from review import ReviewState, ASC, DESC, check_sort_key, check_status
from store import ResultStore, ResultNotFound

config.setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="AutoOMR API", version="1.0")

# Allow CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class Workspace:
    """Upload queue, result store and processing runs shared by all requests."""

    MAX_FINISHED_RUNS = 50

    def __init__(self, store: ResultStore, simulator_factory: Callable[[], PipelineSimulator] = PipelineSimulator):
        self.queue = FileQueue()
        self.store = store
        self.simulator_factory = simulator_factory
        self.runs: Dict[str, dict] = {}
        self.lock = threading.Lock()

    def prune_runs(self) -> None:
        """Forget the oldest finished runs beyond MAX_FINISHED_RUNS; active runs are kept."""
        finished = [run_id for run_id, run in self.runs.items() if run.get("done")]
        for run_id in finished[:max(0, len(finished) - self.MAX_FINISHED_RUNS)]:
            del self.runs[run_id]


_workspace: Optional[Workspace] = None


def get_workspace() -> Workspace:
    global _workspace
    if _workspace is None:
        _workspace = Workspace(ResultStore.load())
    return _workspace


class IdsRequest(BaseModel):
    ids: List[str]


def _file_info(f: OMRFile) -> dict:
    return {"id": f.id, "name": f.name, "size": f.size, "mime_type": f.mime_type, "status": f.status}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/files")
def list_files(ws: Workspace = Depends(get_workspace)):
    return {"files": [_file_info(f) for f in ws.queue]}


@app.post("/files")
async def upload_files(files: List[UploadFile] = File(...), ws: Workspace = Depends(get_workspace)):
    uploads = []
    for upload in files:
        uploads.append((upload.filename or "upload", await upload.read(), upload.content_type, None))
    with ws.lock:
        accepted, rejected = ws.queue.add_many(uploads)
    return {"accepted": [_file_info(f) for f in accepted], "rejected": rejected, "queued": len(ws.queue)}


@app.delete("/files/{file_id}")
def remove_file(file_id: str, ws: Workspace = Depends(get_workspace)):
    with ws.lock:
        removed = ws.queue.remove(file_id)
    if not removed:
        raise HTTPException(status_code=404, detail=f"File not queued: {file_id}")
    return {"removed": file_id}


@app.delete("/files")
def clear_files(ws: Workspace = Depends(get_workspace)):
    with ws.lock:
        ws.queue.clear()
    return {"queued": 0}


def _run_batch(ws: Workspace, run_id: str, files: List[OMRFile]) -> None:
    try:
        simulator = ws.simulator_factory()
        for snap in simulator.run(files):
            with ws.lock:
                ws.runs[run_id] = snap.to_dict()
                if snap.done:
                    ws.store.add_results(snap.results)
    except Exception as e:
        logger.exception("Run %s failed", run_id)
        with ws.lock:
            ws.runs[run_id] = {**ws.runs.get(run_id, {}), "done": True, "error": str(e)}
        return
    logger.info("Run %s finished: %d graded, %d failed", run_id, len(snap.results), snap.error_count)


@app.post("/process", status_code=202)
def start_processing(background_tasks: BackgroundTasks, ws: Workspace = Depends(get_workspace)):
    with ws.lock:
        files = ws.queue.take()
    if not files:
        raise HTTPException(status_code=400, detail="No files queued for processing")
    run_id = uuid.uuid4().hex
    with ws.lock:
        ws.prune_runs()
        ws.runs[run_id] = {"done": False, "total": len(files), "completed": 0, "files": [_file_info(f) for f in files]}
    background_tasks.add_task(_run_batch, ws, run_id, files)
    return {"run_id": run_id, "total": len(files)}


@app.get("/process/{run_id}")
def processing_status(run_id: str, ws: Workspace = Depends(get_workspace)):
    run = ws.runs.get(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail=f"Unknown run: {run_id}")
    return run


@app.get("/results")
def list_results(
    search: str = "",
    status: str = STATUS_ALL,
    sort: str = "total_score",
    direction: str = DESC,
    page: int = 1,
    ws: Workspace = Depends(get_workspace),
):
    if direction not in (ASC, DESC):
        raise HTTPException(status_code=400, detail=f"direction must be {ASC!r} or {DESC!r}")
    try:
        state = ReviewState(search_term=search, status_filter=check_status(status),
                            sort_key=check_sort_key(sort), sort_direction=direction)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    results = ws.store.results
    state.go_to_page(page, results)
    first, last, total = state.showing(results)
    return {
        "items": [r.to_dict() for r in state.page_rows(results)],
        "page": state.current_page,
        "total_pages": state.total_pages(results),
        "showing": {"from": first, "to": last, "of": total},
        "total_processed": ws.store.total_processed,
    }


@app.get("/results/{result_id}")
def get_result(result_id: str, ws: Workspace = Depends(get_workspace)):
    try:
        return ws.store.get(result_id).to_dict()
    except ResultNotFound:
        raise HTTPException(status_code=404, detail=f"Result not found: {result_id}")


@app.post("/results/{result_id}/approve")
def approve_result(result_id: str, ws: Workspace = Depends(get_workspace)):
    try:
        with ws.lock:
            return ws.store.approve(result_id).to_dict()
    except ResultNotFound:
        raise HTTPException(status_code=404, detail=f"Result not found: {result_id}")


@app.post("/results/approve")
def approve_results(body: IdsRequest, ws: Workspace = Depends(get_workspace)):
    with ws.lock:
        count = ws.store.approve_many(body.ids)
    return {"approved": count}


@app.post("/results/delete")
def delete_results(body: IdsRequest, ws: Workspace = Depends(get_workspace)):
    with ws.lock:
        count = ws.store.delete_many(body.ids)
    return {"deleted": count, "remaining": len(ws.store)}


@app.get("/export/csv")
def export_results_csv(
    status: str = STATUS_ALL,
    start: Optional[date] = None,
    end: Optional[date] = None,
    ws: Workspace = Depends(get_workspace),
):
    try:
        content = export_csv(ws.store.results, check_status(status), start, end)
    except EmptyExportError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILE_NAME}.csv"'},
    )


@app.get("/export/xlsx")
def export_results_xlsx(
    status: str = STATUS_ALL,
    start: Optional[date] = None,
    end: Optional[date] = None,
    ws: Workspace = Depends(get_workspace),
):
    try:
        content = export_excel(ws.store.results, check_status(status), start, end)
    except EmptyExportError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return Response(
        content=content,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILE_NAME}.xlsx"'},
    )


@app.get("/analytics")
def analytics(ws: Workspace = Depends(get_workspace)):
    return compute_analytics(ws.store.results)


@app.post("/insights")
def insights(ws: Workspace = Depends(get_workspace)):
    if not ws.store.has_results:
        raise HTTPException(status_code=400, detail="No results to analyse")
    return {"insights": generate_analytics_insights(ws.store.results)}


# Run with: uvicorn fastapi_app:app --reload
