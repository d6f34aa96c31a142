import os


def cpu():
    return max(1, (os.cpu_count() or 1))


bind = os.getenv("GUNI_BIND", "0.0.0.0:8000")
wsgi_app = "config.wsgi:application"

# worker processes
workers = int(os.getenv("GUNI_WORKERS", str(min(max(2, cpu() * 2), 8))))

# threads per worker; every request blocks on the DB and on the payment gateway
worker_class = "gthread"
threads = int(os.getenv("GTHREADS", "4"))

# keep above HTTP_TIMEOUT_SECS times the retry count so gateway retries can finish
timeout = int(os.getenv("GUNI_TIMEOUT", "60"))
graceful_timeout = int(os.getenv("GUNI_GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.getenv("GUNI_KEEPALIVE", "5"))

preload_app = True
max_requests = int(os.getenv("GUNI_MAX_REQUESTS", "2000"))
max_requests_jitter = int(os.getenv("GUNI_MAX_REQUESTS_JITTER", "200"))

accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNI_LOGLEVEL", "info")
