"""Tests for the batch inference scheduler."""

import random
import time

import pytest

from sparse_knn.scheduler import Backend, InferenceScheduler, QueryFailure


def jittery_square(x):
    """Square x after a small random delay so workers finish out of order."""
    time.sleep(random.random() * 0.002)
    return x * x


def fail_on_three(x):
    if x == 3:
        raise ValueError("bad query")
    return x + 1


@pytest.mark.parametrize("backend", list(Backend))
@pytest.mark.parametrize("num_threads", [1, 2, 5, 64])
def test_order_preserved(backend, num_threads):
    """output[i] corresponds to items[i] whatever the backend or thread count."""
    items = list(range(37))
    out = InferenceScheduler(num_threads, backend).run(jittery_square, items)
    assert out == [x * x for x in items]


def test_backends_agree():
    """THREADPOOL and STREAM return identical sequences."""
    items = list(range(100))
    a = InferenceScheduler(4, Backend.THREADPOOL).run(jittery_square, items)
    b = InferenceScheduler(4, Backend.STREAM).run(jittery_square, items)
    assert a == b


@pytest.mark.parametrize("backend", list(Backend))
def test_failures_are_local(backend):
    """A failing item leaves a QueryFailure in its slot; siblings complete."""
    out = InferenceScheduler(3, backend).run(fail_on_three, list(range(6)))
    assert [r for i, r in enumerate(out) if i != 3] == [1, 2, 3, 5, 6]
    assert isinstance(out[3], QueryFailure)
    assert out[3].index == 3
    assert isinstance(out[3].error, ValueError)


@pytest.mark.parametrize("backend", list(Backend))
def test_fail_fast(backend):
    """fail_fast re-raises the first error."""
    with pytest.raises(ValueError, match="bad query"):
        InferenceScheduler(2, backend).run(fail_on_three, list(range(6)), fail_fast=True)


def fail_on_two_and_five(x):
    if x == 5:
        raise ValueError("bad 5")
    if x == 2:
        time.sleep(0.05)
        raise ValueError("bad 2")
    return x


@pytest.mark.parametrize("backend", list(Backend))
@pytest.mark.parametrize("num_threads", [1, 3, 8])
def test_fail_fast_raises_lowest_index(backend, num_threads):
    """With several failures, fail_fast re-raises the one earliest in the batch."""
    with pytest.raises(ValueError, match="bad 2"):
        InferenceScheduler(num_threads, backend).run(fail_on_two_and_five, list(range(8)), fail_fast=True)


@pytest.mark.parametrize("backend", list(Backend))
def test_empty_batch(backend):
    """An empty batch yields an empty result."""
    assert InferenceScheduler(4, backend).run(jittery_square, []) == []


def test_invalid_thread_count():
    """At least one worker is required."""
    with pytest.raises(ValueError):
        InferenceScheduler(0)


@pytest.mark.parametrize("name, expected", [("threadpool", Backend.THREADPOOL), ("STREAM", Backend.STREAM)])
def test_backend_parse(name, expected):
    """Backends are selected by name."""
    assert Backend.parse(name) is expected


def test_backend_parse_unknown():
    """Unknown backends are rejected."""
    with pytest.raises(ValueError):
        Backend.parse("innerthreadpool")
