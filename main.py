"""
Main entrypoint: EnerXchange read-model API server.

Loads settings from the environment (.env supported), prints the startup
summary and runs the FastAPI app with uvicorn. The read model connects to the
contract when the app's lifespan starts.

Env: ENERX_RPC_URL, ENERX_CONTRACT_ADDRESS, ENERX_ACCOUNT_ADDRESS / ENERX_PRIVATE_KEY,
API_HOST, API_PORT, LOG_LEVEL, etc.

API only: uvicorn backend_enerxchange.api_server.app:app --host 0.0.0.0 --port 8000
"""

import os
import sys

# Configure structured JSON logging before other imports that may log
from backend_enerxchange.enerx_logging import get_logger

logger = get_logger("main")


def main() -> None:
    """Validate configuration, then run the API server in the main thread."""
    from backend_enerxchange.config.env import print_enerx_startup
    from backend_enerxchange.config.settings import get_settings

    print_enerx_startup("main")
    settings = get_settings()
    try:
        settings.require_contract()
    except ValueError as e:
        logger.error("main_config_error", message=str(e))
        sys.exit(1)
    if not settings.can_submit:
        logger.info("main_read_only", message="No ENERX_ACCOUNT_ADDRESS / ENERX_PRIVATE_KEY; writes use the wallet's selected account")

    from backend_enerxchange.api_server.app import app
    import uvicorn

    logger.info("main_server_starting", host=settings.api_host, port=settings.api_port)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=os.getenv("LOG_LEVEL", "info").lower())


if __name__ == "__main__":
    main()
