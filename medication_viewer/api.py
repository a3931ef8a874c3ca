"""
FastAPI Interface
JSON API over a medication browsing session
"""

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from loguru import logger
from typing import Optional, Dict, Any
import time

from .config import settings
from .database import SQLDocumentStore
from .exceptions import FetchError
from .export import medications_frame
from .models import DisplayMode, FilterOptions, MedicationRecord, SortField
from .query_adapter import MedicationQueryAdapter
from .viewer import MedicationViewer
from .views import use_system_collation


# Create FastAPI app
app = FastAPI(
    title="Medication Viewer API",
    description="Read-only browsing of medication pricing documents",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Session controller owned by the app
viewer: Optional[MedicationViewer] = None


def get_viewer() -> MedicationViewer:
    """Get or create the viewer session"""
    global viewer
    if viewer is None:
        viewer = MedicationViewer(MedicationQueryAdapter(SQLDocumentStore()))
    return viewer


def _accepted(accepted: bool) -> Dict[str, Any]:
    if not accepted:
        raise HTTPException(status_code=409, detail="A load is already in progress or the request is invalid")
    return get_viewer().snapshot()


async def _lookup(rxcui: str) -> Optional[MedicationRecord]:
    try:
        return await get_viewer().lookup(rxcui)
    except FetchError as e:
        raise HTTPException(status_code=502, detail=str(e))


@app.on_event("startup")
async def startup_event():
    """Open the session and load the first page"""
    use_system_collation()
    try:
        await get_viewer().initialize()
        logger.info("Medication viewer session initialized")
    except Exception as e:
        logger.error(f"Failed to initialize viewer session: {e}")


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    state = get_viewer().state
    return {
        "status": "healthy" if state.is_authenticated else "unauthenticated",
        "total_count": state.total_count,
        "timestamp": time.time()
    }


@app.get("/view")
async def get_view():
    """Current page, filters, sort, stats and selection"""
    return get_viewer().snapshot()


@app.get("/stats")
async def get_stats():
    return get_viewer().stats.model_dump()


@app.post("/pages/next")
async def next_page():
    return _accepted(await get_viewer().next_page())


@app.post("/pages/prev")
async def prev_page():
    return _accepted(await get_viewer().prev_page())


@app.post("/pages/{page}")
async def load_page(page: int):
    """Load a specific page"""
    return _accepted(await get_viewer().load_page(page))


@app.post("/refresh")
async def refresh():
    return _accepted(await get_viewer().refresh())


@app.post("/load-all")
async def load_all():
    """Load every medication into the session"""
    return _accepted(await get_viewer().load_all())


@app.put("/filters")
async def set_filters(filters: FilterOptions):
    get_viewer().set_filters(filters)
    return get_viewer().snapshot()


@app.post("/filters/toggle/{name}")
async def toggle_filter(name: str):
    """Toggle one of: matched, unmatched, liquids, solids"""
    current = get_viewer()
    toggles = {
        "matched": current.toggle_matched_only,
        "unmatched": current.toggle_unmatched_only,
        "liquids": current.toggle_liquids_only,
        "solids": current.toggle_solids_only,
    }
    if name not in toggles:
        raise HTTPException(status_code=404, detail=f"Unknown filter: {name}")
    toggles[name]()
    return current.snapshot()


@app.post("/filters/reset")
async def reset_filters():
    get_viewer().reset_filters()
    return get_viewer().snapshot()


@app.post("/sort/{field}")
async def set_sort(field: SortField):
    get_viewer().set_sort_field(field)
    return get_viewer().snapshot()


@app.put("/display-mode/{mode}")
async def set_display_mode(mode: DisplayMode):
    get_viewer().set_display_mode(mode)
    return get_viewer().snapshot()


@app.get("/medications/{rxcui}")
async def get_medication(rxcui: str):
    """Detail document for one RxCUI"""
    medication = await _lookup(rxcui)
    if medication is None:
        raise HTTPException(status_code=404, detail=f"Medication not found: {rxcui}")

    return medication.to_document()


@app.post("/selection/{rxcui}")
async def select_medication(rxcui: str):
    """Open the detail view for a medication"""
    current = get_viewer()
    medication = next((m for m in current.medications if m.rxcui == rxcui), None)
    if medication is None:
        medication = await _lookup(rxcui)
    if medication is None:
        raise HTTPException(status_code=404, detail=f"Medication not found: {rxcui}")

    current.open_detail(medication)
    return current.snapshot()


@app.delete("/selection")
async def close_selection():
    get_viewer().close_detail()
    return get_viewer().snapshot()


@app.delete("/error")
async def clear_error():
    get_viewer().clear_error()
    return get_viewer().snapshot()


@app.get("/export")
async def export_view(format: str = Query("json", description="json or csv")):
    """Export the visible medications"""
    visible = get_viewer().sorted_medications

    if format == "json":
        return [m.to_document() for m in visible]
    if format == "csv":
        csv_text = medications_frame(visible).to_csv(index=False)
        return Response(
            content=csv_text,
            media_type="text/csv",
            headers={"Content-Disposition": "attachment; filename=medications.csv"}
        )
    raise HTTPException(status_code=400, detail=f"Unsupported export format: {format}")


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler"""
    logger.error(f"Unhandled error: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": f"Internal server error: {str(exc)}"}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "medication_viewer.api:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.API_RELOAD
    )
