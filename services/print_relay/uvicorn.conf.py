import os

host = "0.0.0.0"
port = int(os.getenv("PORT", "9003"))
# printing is low volume; one worker keeps job order
workers = int(os.getenv("UVICORN_WORKERS", "1"))
loop = "uvloop"  # requires uvicorn[standard]
http = "h11"
log_level = os.getenv("LOG_LEVEL", "info")
