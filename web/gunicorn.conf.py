import os

def cpu():
    return max(1, (os.cpu_count() or 1))

wsgi_app = "config.wsgi:application"

# Workers
workers = min(max(2, cpu() * 2), 8)

# gthread keeps a thread per open event stream; size it for dashboards
worker_class = "gthread"
threads = int(os.getenv("GTHREADS", "16"))

# Timeouts
timeout = int(os.getenv("GUNI_TIMEOUT", "60"))
graceful_timeout = int(os.getenv("GUNI_GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.getenv("GUNI_KEEPALIVE", "5"))

# The real-time hub lives in process memory, so subscribers only see events
# published by the worker they are connected to. Run a single worker when
# dashboards rely on the event stream.
if os.getenv("REALTIME_SINGLE_WORKER", "1") == "1":
    workers = 1

preload_app = False
max_requests = int(os.getenv("GUNI_MAX_REQUESTS", "2000"))
max_requests_jitter = int(os.getenv("GUNI_MAX_REQUESTS_JITTER", "200"))

accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNI_LOGLEVEL", "info")
