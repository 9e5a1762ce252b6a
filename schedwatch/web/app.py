"""
FastAPI web application for schedwatch.
Exposes the command surface: browsing the tree, toggling subscriptions, declaring ranges
and querying the service status.
"""
import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import BackgroundTasks, FastAPI, Form, HTTPException, Request
from fastapi.responses import JSONResponse
import uvicorn

from schedwatch.config import CHECK_INTERVAL_MINUTES
from schedwatch.services.checker import Tracker, create_tracker
from schedwatch.services.tree_renderer import node_to_dict

# Configure logging for systemd
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler()]
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Loads the state on startup, runs the periodic check, saves once on shutdown."""
    tracker = create_tracker()
    tracker.prune_history()
    app.state.tracker = tracker

    scheduler = None
    if CHECK_INTERVAL_MINUTES > 0:
        scheduler = asyncio.create_task(tracker.run_forever(CHECK_INTERVAL_MINUTES * 60))
    logging.info("schedwatch started")
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.cancel()
            with suppress(asyncio.CancelledError):
                await scheduler
        tracker.shutdown()
        tracker.db_manager.close()


app = FastAPI(title="schedwatch", version="1.0.0", lifespan=lifespan)


def get_tracker(request: Request) -> Tracker:
    return request.app.state.tracker


# ===== COMMAND ROUTES =====

@app.get("/menu")
async def open_menu(request: Request, chat_id: int, node_id: Optional[str] = None):
    """Browse menu of a node (the root when no id is given)."""
    try:
        return get_tracker(request).menu(chat_id, node_id)
    except Exception as e:
        logging.error(f"Error building menu for {chat_id} at {node_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@app.post("/nodes/{node_id}/toggle")
async def toggle_subscription(request: Request, node_id: str, chat_id: int = Form(...)):
    """Flip the subscription of a user on a node."""
    try:
        return get_tracker(request).toggle(chat_id, node_id)
    except Exception as e:
        logging.error(f"Error toggling {node_id} for {chat_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@app.post("/files/{node_id}/ranges")
async def declare_range(
    request: Request,
    node_id: str,
    chat_id: int = Form(...),
    address: str = Form(...),
    alias: str = Form("")
):
    """Declare a cell range on a spreadsheet file."""
    try:
        return get_tracker(request).declare_range(chat_id, node_id, address, alias or None)
    except Exception as e:
        logging.error(f"Error declaring range {address} on {node_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@app.get("/stats")
async def stats(request: Request):
    """Service status and aggregate subscriber count."""
    return get_tracker(request).stats()


# ===== CHECKER ROUTES =====

@app.post("/run-check")
async def run_check(request: Request, background_tasks: BackgroundTasks):
    """Manually trigger a check."""
    tracker = get_tracker(request)
    if tracker.check_lock.locked():
        return JSONResponse(
            status_code=409,
            content={"detail": "A check is already in progress", "is_checking": True}
        )
    background_tasks.add_task(tracker.run_check)
    logging.info("Manual check triggered via web interface")
    return JSONResponse({"status": "success", "message": "Check started in background"})


@app.get("/logs")
async def view_logs(request: Request, limit: int = 100):
    """Recent check activity."""
    try:
        return get_tracker(request).db_manager.get_check_logs(limit=limit)
    except Exception as e:
        logging.error(f"Error reading logs: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@app.get("/api/tree")
async def api_get_tree(request: Request):
    """The committed tree as JSON."""
    return node_to_dict(get_tracker(request).state.tree)


if __name__ == "__main__":
    uvicorn.run(
        "schedwatch.web.app:app",
        host="0.0.0.0",
        port=8000,
        reload=False,
        log_level="info"
    )
