"""Entrypoint for the batch operations HTTP server."""

from __future__ import annotations

import sys
from pathlib import Path

if __package__ in (None, ""):
    sys.path.insert(0, str(Path(__file__).resolve().parents[1]))  # pragma: no cover

from batch_ops import __version__
from batch_ops.config import load_settings
from batch_ops.logging_utils import configure_logging, get_logger


def run_entrypoint() -> None:
    """Configure logging and serve the HTTP app with uvicorn."""
    settings = load_settings()
    configure_logging()
    from batch_ops.transport.http_server import create_http_app

    try:
        import uvicorn
    except ImportError as exc:
        raise RuntimeError("uvicorn is required to run the HTTP server") from exc

    logger = get_logger(__name__)
    logger.info("Initializing batch operations server v%s", __version__)
    logger.info("Log file configured at: %s", settings.logging.file)
    app = create_http_app()
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        ws="none",
        log_config=None,
    )


if __name__ == "__main__":  # pragma: no cover
    run_entrypoint()
