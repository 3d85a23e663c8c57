"""
Production Server Configuration

Run the Storefront API with Uvicorn workers under Gunicorn.

Each worker runs its own lifespan and therefore its own backend selection
and connection pool; size POSTGRES_POOL_MAX_SIZE accordingly.
"""

import multiprocessing
import os

# Server socket
bind = os.getenv("BIND", "0.0.0.0:3000")
backlog = 2048

# Worker processes
workers = int(os.getenv("WORKERS", multiprocessing.cpu_count() * 2 + 1))
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000
max_requests = 10000
max_requests_jitter = 1000
timeout = 120
keepalive = 5
graceful_timeout = 30

# Process naming
proc_name = "storefront-api"

# Server mechanics
daemon = False
pidfile = "/tmp/gunicorn.pid"

# Logging
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
accesslog = "-"
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'


def when_ready(server):
    """Called when server is ready to receive connections."""
    server.log.info("Storefront API ready on %s", bind)


def worker_abort(worker):
    """Called when worker receives SIGABRT signal."""
    worker.log.warning("Worker %s aborted", worker.pid)
