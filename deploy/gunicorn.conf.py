"""Gunicorn configuration for the ICS TA Bot.

Usage:
    gunicorn main:app -c deploy/gunicorn.conf.py

Running more than one worker requires STORE_TYPE=redis: the in-memory store
is per process, so whitelist, codes, quota counters and sessions would
differ between workers.
"""

import multiprocessing
import os

# ─── Server socket ──────────────────────────────────────────────

bind = os.getenv("BIND", "0.0.0.0:3000")
backlog = 1024

# ─── Worker processes ───────────────────────────────────────────
#
# Async ASGI workers; one per core is enough for an I/O-bound service whose
# time is spent waiting on the embedding and chat providers.

workers = int(os.getenv("WORKERS", min(multiprocessing.cpu_count(), 4)))
worker_class = "uvicorn.workers.UvicornWorker"

# ─── Timeouts ───────────────────────────────────────────────────
#
# A query makes one embedding call and one chat call, each capped at
# PROVIDER_TIMEOUT (60s by default).

timeout = 150
graceful_timeout = 30
keepalive = 5

# ─── Worker recycling ──────────────────────────────────────────

max_requests = 5000
max_requests_jitter = 500

# ─── Logging ────────────────────────────────────────────────────
# Application logs carry the request ID (see main.configure_logging);
# request lines are logged by RequestIdMiddleware, so gunicorn's access
# log stays off.

accesslog = None
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()

# ─── Process naming ─────────────────────────────────────────────

proc_name = "ics-ta-bot"

# ─── Server hooks ───────────────────────────────────────────────


def on_starting(server):
    """Called just before the master process is initialized."""
    server.log.info(
        "Starting ICS TA Bot — workers=%d, timeout=%ds, bind=%s, store=%s",
        workers,
        timeout,
        bind,
        os.getenv("STORE_TYPE", "memory"),
    )
    if workers > 1 and os.getenv("STORE_TYPE", "memory") != "redis":
        server.log.warning(
            "Multiple workers with the in-memory store: state is not shared between workers"
        )


def worker_exit(server, worker):
    """Called when a worker has been killed or exited."""
    server.log.info("Worker exit (pid: %s)", worker.pid)
