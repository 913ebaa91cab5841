"""
Helper script to run the FastAPI app with a predictable sys.path.
Usage:
  python run_api.py
"""
import os
import sys

from uvicorn import run

ROOT = os.path.dirname(os.path.abspath(__file__))
PACKAGE_DIR = os.path.join(ROOT, "backend", "fetcher")

if ROOT not in sys.path:
  sys.path.insert(0, ROOT)

# Ensure reloader subprocess also sees the repository root on PYTHONPATH
os.environ["PYTHONPATH"] = os.pathsep.join(
  [ROOT] + [p for p in os.environ.get("PYTHONPATH", "").split(os.pathsep) if p]
)

if __name__ == "__main__":
  # Run uvicorn with reload and limit watch dirs to backend/fetcher for stability
  log_level = os.environ.get("APP_LOG_LEVEL", "info").lower()
  run(
    "backend.fetcher.main:app",
    host=os.environ.get("APP_HOST", "0.0.0.0"),
    port=int(os.environ.get("APP_PORT", "8000")),
    reload=True,
    reload_dirs=[PACKAGE_DIR],
    log_level=log_level,
    access_log=True,
  )
