# =============================================================================
# RosterDesk - Gunicorn Configuration
# Usage: gunicorn -c gunicorn.conf.py run:app
# =============================================================================
import os
import multiprocessing

bind = f"0.0.0.0:{os.environ.get('PORT', '8000')}"

workers = int(os.environ.get('WEB_CONCURRENCY', min(multiprocessing.cpu_count() * 2 + 1, 4)))
worker_class = "gthread"
threads = int(os.environ.get('GUNICORN_THREADS', 4))

# Sentry and the SQLAlchemy engine are set up per worker
preload_app = False

# Rotation finalize and bulk commit can touch a few thousand rows
timeout = 60
graceful_timeout = 20
keepalive = 5

# Logging
accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("LOG_LEVEL", "info")
access_log_format = '%(h)s "%(r)s" %(s)s %(b)s %(L)s rid=%({x-request-id}i)s'

max_requests = 2000
max_requests_jitter = 100

limit_request_line = 8190
limit_request_fields = 100

forwarded_allow_ips = os.environ.get("FORWARDED_ALLOW_IPS", "127.0.0.1")
