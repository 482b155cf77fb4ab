import pytest

from deploy.readiness import wait_for_app, wait_for_database, wait_until
from utils.errors import ReadinessTimeout
from utils.executor import CommandResult


class Clock:
    def __init__(self):
        self.sleeps = []

    def __call__(self, seconds):
        self.sleeps.append(seconds)


def test_wait_until_returns_on_first_success():
    clock = Clock()
    assert wait_until(lambda: True, 30, 2, "Readiness", sleep=clock) == 1
    assert clock.sleeps == []


def test_wait_until_retries_then_succeeds():
    answers = iter([False, False, True])
    clock = Clock()
    assert wait_until(lambda: next(answers), 30, 2, "Readiness", sleep=clock) == 3
    assert clock.sleeps == [2, 2]


def test_wait_until_exhausts_budget():
    calls = []
    clock = Clock()

    with pytest.raises(ReadinessTimeout) as exc:
        wait_until(lambda: calls.append(1), 5, 2, "Database readiness", sleep=clock)

    assert len(calls) == 5
    assert clock.sleeps == [2] * 4
    assert exc.value.attempts == 5
    assert "Database readiness" in str(exc.value)
    assert exc.value.exit_code == 1


def test_wait_for_database_pings_with_root_password(executor):
    wait_for_database(executor, ['docker', 'compose'], 'rootpw', sleep=Clock())
    assert executor.lines == [
        'docker compose exec -T db mysqladmin ping -h localhost -u root -prootpw'
    ]


def test_wait_for_database_times_out_after_thirty_attempts(executor):
    executor.fail('mysqladmin ping')
    clock = Clock()

    with pytest.raises(ReadinessTimeout):
        wait_for_database(executor, ['docker', 'compose'], 'pw', sleep=clock)

    assert executor.count('mysqladmin ping') == 30
    assert sum(clock.sleeps) == 29 * 2


def test_wait_for_app_retries(executor):
    results = iter([CommandResult(1), CommandResult(0)])
    executor.on('artisan --version', handler=lambda call: next(results))

    wait_for_app(executor, ['docker', 'compose'], sleep=Clock())

    assert executor.count('artisan --version') == 2
