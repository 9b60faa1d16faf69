"""Read-only status API using FastAPI."""
from typing import Optional
from fastapi import FastAPI, HTTPException
import logging
import threading
import time

from promdd.config import WorkerConfig

logger = logging.getLogger(__name__)


class ControlAPI:
    """FastAPI app reporting health and scheduler status."""

    def __init__(self, scheduler, worker_config: WorkerConfig):
        """
        Initialize status API.

        Args:
            scheduler: Scheduler whose state is reported
            worker_config: Effective worker settings, echoed in /status
        """
        self.scheduler = scheduler
        self.worker_config = worker_config
        self.start_time = time.time()
        self.app = FastAPI(title="promdd Status API")
        self._setup_routes()

    def _setup_routes(self):
        """Setup API routes."""

        @self.app.get("/healthz")
        async def healthz():
            """Health check endpoint."""
            return {"status": "healthy", "timestamp": time.time()}

        @self.app.get("/status")
        async def status():
            """Get current scheduler status."""
            try:
                return self.status()
            except Exception as e:
                logger.error(f"Error getting status: {e}")
                raise HTTPException(status_code=500, detail=str(e))

    def status(self) -> dict:
        scheduler = self.scheduler
        report = scheduler.last_report
        last_error: Optional[str] = None
        if scheduler.last_error is not None:
            last_error = f"{type(scheduler.last_error).__name__}: {scheduler.last_error}"

        return {
            "uptime_seconds": time.time() - self.start_time,
            "state": scheduler.state.value,
            "tick_count": scheduler.tick_count,
            "failed_ticks": scheduler.failed_ticks,
            "skipped_ticks": scheduler.skipped_ticks,
            "running_ticks": scheduler.running_ticks,
            "last_error": last_error,
            "last_success_time": scheduler.last_success_time,
            "last_window": {
                "start": report.window.start,
                "end": report.window.end,
                "step": report.window.step,
            } if report else None,
            "last_series_counts": dict(report.series_counts) if report else None,
            "config": self.worker_config.model_dump(),
        }

    def run(self, host: str = "0.0.0.0", port: int = 8081):
        """Run the API server (blocking)."""
        import uvicorn
        uvicorn.run(self.app, host=host, port=port, log_level="info")

    def start_in_thread(self, host: str = "0.0.0.0", port: int = 8081) -> threading.Thread:
        thread = threading.Thread(
            target=self.run,
            kwargs={"host": host, "port": port},
            name="promdd-control-api",
            daemon=True,
        )
        thread.start()
        logger.info(f"Status API listening on {host}:{port}")
        return thread
