"""Run ARQ worker. Usage: python -m app.worker.run_worker (or `arq app.worker.run_worker.WorkerSettings`)"""

from arq import run_worker
from arq.cron import cron

from app.core.config import get_settings
from app.core.logging import configure_logging
from app.worker.tasks import get_redis_settings, poll_generating_scenes, shutdown, startup


class WorkerSettings:
    redis_settings = get_redis_settings()
    cron_jobs = [
        cron(poll_generating_scenes, second=0),  # every minute at :00
    ]
    on_startup = startup
    on_shutdown = shutdown


def main() -> None:
    configure_logging(debug=get_settings().debug, service="storyboard-chat-worker")
    run_worker(WorkerSettings)


if __name__ == "__main__":
    main()
