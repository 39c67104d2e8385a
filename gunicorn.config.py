import os

worker_class = "gevent"
# every worker starts its own posting loops when SCHEDULER_ENABLED is set
workers = int(os.getenv("WEB_CONCURRENCY", "1"))
worker_connections = 1000
timeout = 120
bind = "0.0.0.0:{}".format(os.getenv("PORT", "10000"))
wsgi_app = "wsgi:app"

loglevel = os.getenv("LOG_LEVEL", "info")
accesslog = "-"
errorlog = "-"
