# TREESCOUT v2.0
'''Readiness polling for the database and application containers'''

import time

from cli.ui import console, show_success
from config import APP_READY_ATTEMPTS, DB_READY_ATTEMPTS, READY_INTERVAL_SECONDS
from utils.errors import ReadinessTimeout


def wait_until(ready, attempts, interval, step, hint=None, sleep=time.sleep):
    '''Call ready() until it returns True, at most `attempts` times.
    Raises ReadinessTimeout when the budget is exhausted.
    '''
    for attempt in range(1, attempts + 1):
        if ready():
            if console.is_terminal:
                console.print()
            return attempt
        if console.is_terminal:
            console.print(f"\r  │     ⏳ Attempt {attempt}/{attempts}...", end="", style="cyan")
        if attempt < attempts:
            sleep(interval)

    if console.is_terminal:
        console.print()
    raise ReadinessTimeout(step, attempts, hint=hint)


def wait_for_database(executor, compose, root_password, cwd=None,
                      attempts=DB_READY_ATTEMPTS, interval=READY_INTERVAL_SECONDS, sleep=time.sleep):
    '''Poll mysqladmin ping inside the db container'''

    def ready():
        return executor.run(
            list(compose) + ['exec', '-T', 'db', 'mysqladmin', 'ping',
                             '-h', 'localhost', '-u', 'root', f'-p{root_password}'],
            cwd=cwd,
        ).ok

    wait_until(ready, attempts, interval, "Database readiness",
               hint="Check docker logs: docker compose logs db", sleep=sleep)
    show_success("Database is ready")


def wait_for_app(executor, compose, cwd=None,
                 attempts=APP_READY_ATTEMPTS, interval=READY_INTERVAL_SECONDS, sleep=time.sleep):
    '''Poll `php artisan --version` inside the app container'''

    def ready():
        return executor.run(
            list(compose) + ['exec', '-T', 'app', 'php', 'artisan', '--version'],
            cwd=cwd,
        ).ok

    wait_until(ready, attempts, interval, "Application readiness",
               hint="Check docker logs: docker compose logs app", sleep=sleep)
    show_success("Application is ready")
