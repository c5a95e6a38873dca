"""Run the lead-watch backend server."""
import uvicorn

from backend.config import BACKEND_HOST, BACKEND_PORT
from leadwatch.main import configure_logging

if __name__ == "__main__":
    configure_logging()
    uvicorn.run("backend.main:app", host=BACKEND_HOST, port=BACKEND_PORT, log_config=None)
