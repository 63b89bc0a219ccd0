"""
Production Server Configuration

Runs the storefront API with Uvicorn workers under Gunicorn:

    gunicorn storefront.main:app -c gunicorn.conf.py
"""

import multiprocessing
import os

# Server socket
bind = os.getenv("BIND", "0.0.0.0:8000")
backlog = 2048

# Worker processes
workers = int(os.getenv("WORKERS", multiprocessing.cpu_count() * 2 + 1))
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000
max_requests = 10000
max_requests_jitter = 1000
# Payment gateway calls are bounded by PAYMENT_TIMEOUT_SECONDS
timeout = 60
keepalive = 5
graceful_timeout = 30

proc_name = "storefront-orders-api"

# Logging (application logs go through structlog on stdout)
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
accesslog = None


def when_ready(server):
    server.log.info("Storefront Orders API ready on %s with %s workers", bind, workers)


def worker_abort(worker):
    worker.log.warning("Worker %s aborted (timeout)", worker.pid)
