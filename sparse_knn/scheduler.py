# sparse_knn/scheduler.py
# -----------------------------------------------------------------------------
# Fan a batch of independent queries out over worker threads, fan the results
# back in, in input order.
#
# Backends
# --------
# THREADPOOL : dynamic. A fixed ThreadPoolExecutor pulls one query at a time
#              from its shared queue; results land in a pre-sized list at the
#              query's index, so completion order never matters.
# STREAM     : static. The batch is cut into contiguous chunks, one per lane;
#              a lane runs its chunk sequentially. Lanes run via joblib
#              threads. Less scheduling overhead, no load balancing.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Sequence

import numpy as np
from joblib import Parallel, delayed

LOGGER = logging.getLogger(__name__)


class Backend(Enum):
    """The threading model used for batch inference."""

    THREADPOOL = "threadpool"
    STREAM = "stream"

    @classmethod
    def parse(cls, value) -> "Backend":
        if isinstance(value, cls):
            return value
        key = str(value).strip().upper()
        if key not in cls.__members__:
            raise ValueError(f"Unknown backend '{value}'; expected one of {[m.value for m in cls]}.")
        return cls[key]


@dataclass(frozen=True)
class QueryFailure:
    """Placeholder for a query that raised; keeps its slot in the output."""

    index: int
    error: BaseException

    def __repr__(self) -> str:
        return f"QueryFailure(index={self.index}, error={self.error!r})"


class InferenceScheduler:
    """
    Run `fn` over a batch with up to `num_threads` workers.

    Parameters
    ----------
    num_threads : int
        Worker count (>= 1).
    backend : Backend
        Work-distribution policy; affects speed only, never results.
    """

    def __init__(self, num_threads: int = 1, backend: Backend = Backend.THREADPOOL):
        if int(num_threads) < 1:
            raise ValueError("num_threads must be >= 1")
        self.num_threads = int(num_threads)
        self.backend = Backend.parse(backend)

    # ----------------------------- public API ----------------------------- #

    def run(self, fn: Callable[[Any], Any], items: Sequence[Any], fail_fast: bool = False) -> List[Any]:
        """
        Apply `fn` to every item; output[i] corresponds to items[i].

        With fail_fast=False an exception raised for one item is stored as a
        QueryFailure in that item's slot and the rest of the batch completes.
        With fail_fast=True the failure with the lowest index is re-raised,
        whatever order the workers hit it in.
        """
        items = list(items)
        if not items:
            return []
        LOGGER.debug("Scheduling %d queries on %d %s worker(s)", len(items), self.num_threads, self.backend.value)
        if self.backend is Backend.THREADPOOL:
            return self._run_threadpool(fn, items, fail_fast)
        return self._run_stream(fn, items, fail_fast)

    # ------------------------------ backends ------------------------------ #

    def _run_threadpool(self, fn, items: List[Any], fail_fast: bool) -> List[Any]:
        out: List[Any] = [None] * len(items)
        workers = min(self.num_threads, len(items))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="knn-infer") as pool:
            futures = {pool.submit(_guarded, fn, item, i, fail_fast): i for i, item in enumerate(items)}
            if fail_fast:
                _raise_lowest_failure(futures)
            for fut, i in futures.items():
                out[i] = fut.result()
        return out

    def _run_stream(self, fn, items: List[Any], fail_fast: bool) -> List[Any]:
        lanes = min(self.num_threads, len(items))
        bounds = np.array_split(np.arange(len(items)), lanes)
        chunks = [(int(b[0]), items[int(b[0]):int(b[-1]) + 1]) for b in bounds if b.size]
        results = Parallel(n_jobs=lanes, prefer="threads")(
            delayed(_run_lane)(fn, start, chunk, fail_fast) for start, chunk in chunks
        )
        out: List[Any] = []
        for lane in results:
            out.extend(lane)
        if fail_fast:
            # lanes are in input order and each stops at its first failure
            for res in out:
                if isinstance(res, QueryFailure):
                    raise res.error
        return out


def _raise_lowest_failure(futures) -> None:
    """
    Wait until some future fails, then re-raise the failure with the lowest
    input index. Pending work above that index is cancelled; work below it
    is allowed to finish, since it may hold an earlier failure.
    """
    done, pending = wait(futures, return_when=FIRST_EXCEPTION)
    failed = [f for f in done if f.exception() is not None]
    if not failed:
        return
    first = min(futures[f] for f in failed)
    earlier = []
    for fut in pending:
        if futures[fut] > first:
            fut.cancel()
        else:
            earlier.append(fut)
    wait(earlier)
    failed.extend(f for f in earlier if f.exception() is not None)
    raise min(failed, key=futures.__getitem__).exception()


def _guarded(fn, item, index: int, fail_fast: bool):
    try:
        return fn(item)
    except Exception as e:
        if fail_fast:
            raise
        LOGGER.warning("Query %d failed: %s", index, e)
        return QueryFailure(index=index, error=e)


def _run_lane(fn, start: int, chunk: List[Any], fail_fast: bool) -> List[Any]:
    out: List[Any] = []
    for offset, item in enumerate(chunk):
        if not fail_fast:
            out.append(_guarded(fn, item, start + offset, fail_fast))
            continue
        try:
            out.append(fn(item))
        except Exception as e:
            out.append(QueryFailure(index=start + offset, error=e))
            break
    return out
