import logging
import os

from gunicorn import glogging

from paim.middleware import HEALTH_CHECK_PATH

MAX_WORKERS = (os.cpu_count() or 1) * 2
WORKER_COUNT = int(os.getenv("WEB_CONCURRENCY", f"{MAX_WORKERS}"))


class HealthCheckFilter(logging.Filter):
    def filter(self, record):  # noqa: A003
        return f"GET {HEALTH_CHECK_PATH}" not in record.getMessage()


class CustomGunicornLogger(glogging.Logger):
    def setup(self, cfg):
        super().setup(cfg)
        logger = logging.getLogger("uvicorn.access")
        logger.addFilter(HealthCheckFilter())


wsgi_app = "paim.app:create_app()"
accesslog = "-"
access_log_format = (
    '%(t)s %({x-forwarded-for}i)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(L)s'
)
errorlog = "-"
logger_class = CustomGunicornLogger
worker_tmp_dir = "/dev/shm"  # noqa: S108
forwarded_allow_ips = "*"
proxy_allow_ips = "*"
bind = ":8443"
worker_class = "uvicorn.workers.UvicornWorker"
# Start at least 2 but no more than 8 workers
workers = max(2, min(8, WORKER_COUNT))
timeout = 60
