"""Production Gunicorn settings for the AstroSonify API.

Requests are CPU-bound (image analysis plus audio synthesis), so workers scale
with cores and the timeout leaves room for long renders. Override individual
values using environment variables (GUNICORN_*).

    gunicorn -c ops/gunicorn.conf.py astrosonify.api.main:app
"""
from __future__ import annotations

import multiprocessing
import os


wsgi_app = os.environ.get("GUNICORN_APP", "astrosonify.api.main:app")
bind = os.environ.get("GUNICORN_BIND", "0.0.0.0:8000")
worker_class = os.environ.get("GUNICORN_WORKER_CLASS", "uvicorn.workers.UvicornWorker")

default_workers = max(2, multiprocessing.cpu_count() // 2)
workers = int(os.environ.get("GUNICORN_WORKERS", default_workers))
threads = int(os.environ.get("GUNICORN_THREADS", "1"))

timeout = int(os.environ.get("GUNICORN_TIMEOUT", "180"))
graceful_timeout = int(os.environ.get("GUNICORN_GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.environ.get("GUNICORN_KEEPALIVE", "5"))

max_requests = int(os.environ.get("GUNICORN_MAX_REQUESTS", "500"))
max_requests_jitter = int(os.environ.get("GUNICORN_MAX_REQUESTS_JITTER", "50"))

loglevel = os.environ.get("GUNICORN_LOGLEVEL", "info")
accesslog = os.environ.get("GUNICORN_ACCESSLOG", "-")
errorlog = os.environ.get("GUNICORN_ERRORLOG", "-")

reuse_port = os.environ.get("GUNICORN_REUSE_PORT", "true").lower() in {"1", "true", "yes"}


def child_exit(server, worker):  # pragma: no cover - gunicorn hook
    # Drop the dead worker's live metric files so /metrics does not double count.
    if os.environ.get("PROMETHEUS_MULTIPROC_DIR"):
        from prometheus_client import multiprocess

        multiprocess.mark_process_dead(worker.pid)
