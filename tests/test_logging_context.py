"""Tests for logging context propagation."""

import threading

import pytest

from notifier.logging.context import (
    clear_log_context,
    get_log_context,
    log_context,
    pop_log_context,
    push_log_context,
)


@pytest.fixture(autouse=True)
def clean_context():
    """Clear logging context before and after each test."""
    clear_log_context()
    yield
    clear_log_context()


def test_empty_context():
    assert get_log_context() == {}


def test_push_and_pop():
    token = push_log_context(sweep_id="a1b2c3d4", batch=3)
    assert get_log_context() == {"sweep_id": "a1b2c3d4", "batch": 3}

    pop_log_context(token)
    assert get_log_context() == {}


def test_nested_push_restores_outer_layers():
    outer = push_log_context(sweep_id="a1b2c3d4")
    inner = push_log_context(record_id=42)
    assert get_log_context() == {"sweep_id": "a1b2c3d4", "record_id": 42}

    pop_log_context(inner)
    assert get_log_context() == {"sweep_id": "a1b2c3d4"}

    pop_log_context(outer)
    assert get_log_context() == {}


def test_inner_value_shadows_outer():
    with log_context(record_id=1):
        with log_context(record_id=2):
            assert get_log_context()["record_id"] == 2
        assert get_log_context()["record_id"] == 1


def test_returned_dict_is_a_copy():
    with log_context(job_name="student-progress-report"):
        context = get_log_context()
        context["job_name"] = "tampered"

        assert get_log_context()["job_name"] == "student-progress-report"


def test_context_manager_restores_on_exception():
    with pytest.raises(RuntimeError):
        with log_context(record_id=7):
            raise RuntimeError("smtp exploded")

    assert get_log_context() == {}


def test_context_manager_does_not_swallow_exceptions():
    manager = log_context(record_id=7)
    manager.__enter__()

    assert manager.__exit__(RuntimeError, RuntimeError("x"), None) is False


def test_clear_log_context():
    push_log_context(job_name="student-progress-report", report_date="2025-03-10")

    clear_log_context()

    assert get_log_context() == {}


def test_threads_do_not_share_context():
    seen = {}

    def worker(record_id):
        with log_context(record_id=record_id):
            barrier.wait()
            seen[record_id] = get_log_context()

    barrier = threading.Barrier(2)
    threads = [threading.Thread(target=worker, args=(i,)) for i in (1, 2)]

    with log_context(sweep_id="main"):
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert get_log_context() == {"sweep_id": "main"}

    assert seen[1] == {"record_id": 1}
    assert seen[2] == {"record_id": 2}
