# gunicorn.conf.py

bind = "0.0.0.0:8000"
forwarded_allow_ips = "*"

workers = 3
threads = 2
worker_class = "gthread"
# Matches LISTINGS_QUERY_TIMEOUT_SECONDS.
timeout = 60
graceful_timeout = 30
keepalive = 5

accesslog = "-"
errorlog = "-"
loglevel = "info"

wsgi_app = "main:app"
