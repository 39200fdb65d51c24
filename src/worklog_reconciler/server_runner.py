"""Helpers to launch the local reconciliation API."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import uvicorn

from .config import ReconcileSettings, ServiceSettings
from .paths import get_db_path
from .webapp import create_app


def run_server(
    *,
    host: str = "127.0.0.1",
    port: int = 8765,
    db_path: Optional[Path] = None,
    settings: Optional[ReconcileSettings] = None,
    service_settings: Optional[ServiceSettings] = None,
    log_level: str = "info",
) -> None:
    """Start the FastAPI app under uvicorn until interrupted."""
    app = create_app(
        db_path=db_path or get_db_path(),
        settings=settings or ReconcileSettings(),
        service_settings=service_settings or ServiceSettings.from_env(),
    )
    if app.state.worklog_source is None:
        logging.getLogger(__name__).warning(
            "TEMPO_API_TOKEN is not set; work-log endpoints will answer 503."
        )

    logging.getLogger("uvicorn.error").setLevel(log_level.upper())
    uvicorn.run(app, host=host, port=port, log_level=log_level)
