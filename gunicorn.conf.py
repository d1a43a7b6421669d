"""
Gunicorn configuration for the recovery API.

Env vars that override defaults:
  PORT  — TCP port to bind (default: 8000)

The in-memory progression state is owned by one process, so the worker
count is fixed at 1. Do not scale it with WORKERS.
"""
import os

bind = f"0.0.0.0:{os.environ.get('PORT', '8000')}"

# Single writer: one process owns the state and the database file.
workers = 1

# Each worker runs Uvicorn's ASGI event loop inside Gunicorn's process manager.
worker_class = "uvicorn.workers.UvicornWorker"

wsgi_app = "recovery.main:app"

keepalive = 5

timeout = 120

# Stdout only.
loglevel = os.environ.get("LOG_LEVEL", "info").lower()
accesslog = "-"
errorlog = "-"
access_log_format = '%(h)s "%(r)s" %(s)s %(b)sB %(D)sµs'

# Graceful restart: wait up to 30 s for in-flight requests to finish.
graceful_timeout = 30
