import os

host = os.getenv("HOST", "0.0.0.0")
port = int(os.getenv("PORT", "9001"))
# state lives in DATABASE_URL; with the default SQLite file keep one worker
workers = int(os.getenv("UVICORN_WORKERS", "1"))
loop = "uvloop"  # requires uvicorn[standard]
http = "h11"
log_level = os.getenv("LOG_LEVEL", "info")
