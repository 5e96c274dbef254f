"""
Production Server Configuration

Run FastAPI with Uvicorn workers under Gunicorn. Each worker holds its own
cache manager, so concurrent misses are coalesced per worker; the Redis
store is shared by all of them.
"""

import multiprocessing
import os

bind = f"{os.getenv('API_HOST', '0.0.0.0')}:{os.getenv('API_PORT', '8000')}"

# Analytics reads are I/O bound; past a handful of workers Redis and
# PostgreSQL connections become the limit
workers = int(os.getenv("WORKERS", min(multiprocessing.cpu_count() * 2 + 1, 9)))
worker_class = "uvicorn.workers.UvicornWorker"
max_requests = 10000
max_requests_jitter = 1000

# Must exceed CACHE_FETCH_TIMEOUT_SECONDS so coalesced fetches time out first
timeout = int(os.getenv("WORKER_TIMEOUT", "60"))
graceful_timeout = 30
keepalive = 5

proc_name = "storefront-core-api"

# structlog renders the application records; gunicorn only writes its own
errorlog = "-"
accesslog = None
loglevel = os.getenv("LOG_LEVEL", "info").lower()
