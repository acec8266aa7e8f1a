"""
Parallel execution of a simulation over independent workers.

Each worker runs a disjoint share of the requested iterations with a private
RNG stream seeded at seed + worker_id * WORKER_SEED_STRIDE, and returns plain
tallies that are merged once every worker has finished.
"""
import concurrent.futures as cf
import dataclasses
import logging
import math
import time
from typing import Any, Dict, List, Optional, Tuple

from tqdm.auto import tqdm

from gamesim import stats
from gamesim.constants import WORKER_SEED_STRIDE
from gamesim.errors import ConfigurationError
from gamesim.memory.streaming import MemoryConfig, ResultProcessor
from gamesim.rng.generators import create_generator
from gamesim.simulator.config import SimulationConfig
from gamesim.simulator.monte_carlo import MonteCarloSimulator, SimulationResult

logger = logging.getLogger(__name__)

_MASK32 = 0xFFFFFFFF


def split_iterations(total: int, num_workers: int) -> List[int]:
    """Share `total` iterations as evenly as possible (first workers get the remainder)."""
    base, extra = divmod(total, num_workers)
    return [base + (1 if w < extra else 0) for w in range(num_workers)]


def worker_seed(seed: int, worker_id: int) -> int:
    return (seed + worker_id * WORKER_SEED_STRIDE) & _MASK32


def _run_worker(args: Tuple[int, SimulationConfig]) -> Dict[str, Any]:
    """Run one worker's share and return its partial tallies."""
    worker_id, config = args
    result = MonteCarloSimulator().run(config)
    n = result.actual_iterations
    sums, sums_sq = [], []
    for mean, var in zip(result.statistics["mean"], result.statistics["variance"]):
        sums.append(mean * n)
        sums_sq.append(var * (n - 1) + n * mean * mean)
    return {
        "worker_id": worker_id,
        "iterations": n,
        "outcomes": result.outcomes,
        "strategy_frequencies": result.strategy_frequencies,
        "payoff_sums": sums,
        "payoff_sums_sq": sums_sq,
        "rng_info": result.rng_info,
    }


def run_parallel(config: SimulationConfig, num_workers: int = 4, executor: str = "process",
                 max_workers: Optional[int] = None) -> SimulationResult:
    """
    Run a simulation split across independent workers and merge the tallies.

    Convergence early stopping, history tracking and progress callbacks are
    per-run features and are not applied inside workers.

    Args:
        config: Run configuration
        num_workers: Number of disjoint iteration shares
        executor: "process" (spawned processes), "thread" or "serial"
        max_workers: Pool size (num_workers when None)

    Returns:
        SimulationResult over all workers
    """
    config.validate()
    if num_workers < 1:
        raise ConfigurationError("num_workers must be positive")
    if executor not in ("process", "thread", "serial"):
        raise ConfigurationError(f"Unknown executor: {executor!r}")

    seed = config.seed if config.seed is not None else int(time.time() * 1000) & _MASK32
    shares = [n for n in split_iterations(config.iterations, num_workers) if n > 0]
    jobs = []
    for worker_id, share in enumerate(shares):
        worker_config = dataclasses.replace(
            config, iterations=share, seed=worker_seed(seed, worker_id), on_progress=None,
            convergence=None, track_history=False, show_progress=False, verbose=False,
            analyze_equilibria=False)
        jobs.append((worker_id, worker_config))

    logger.info(f"Running {config.iterations} iterations on {len(jobs)} workers ({executor})")
    started = time.perf_counter()
    bar_kwargs = dict(total=len(jobs), desc="   workers", unit="worker", leave=False,
                      disable=not config.show_progress)
    if executor == "process":
        import multiprocessing as mp
        ctx = mp.get_context("spawn")
        with cf.ProcessPoolExecutor(max_workers=max_workers or len(jobs), mp_context=ctx) as pool:
            partials = list(tqdm(pool.map(_run_worker, jobs), **bar_kwargs))
    elif executor == "thread":
        with cf.ThreadPoolExecutor(max_workers=max_workers or len(jobs)) as pool:
            partials = list(tqdm(pool.map(_run_worker, jobs), **bar_kwargs))
    else:
        partials = [out for out in tqdm(map(_run_worker, jobs), **bar_kwargs)]

    processor = ResultProcessor(MemoryConfig(chunk_size=max(1, math.ceil(len(partials) / 4))))
    processor.process_results(partials)
    merged = processor.aggregate_all_results()

    n = merged["iterations"]
    means, variances, stds, intervals = [], [], [], []
    for total, total_sq in zip(merged["payoff_sums"], merged["payoff_sums_sq"]):
        mean, var = stats.running_moments(total, total_sq, n)
        means.append(mean)
        variances.append(var)
        stds.append(math.sqrt(var))
        intervals.append(list(stats.confidence_interval(mean, var, n)))

    elapsed = time.perf_counter() - started
    logger.info(f"Parallel simulation finished: {n} iterations in {elapsed:.2f}s")
    return SimulationResult(
        actual_iterations=n,
        requested_iterations=config.iterations,
        outcomes=merged["outcomes"],
        strategy_frequencies=merged["strategy_frequencies"],
        expected_payoffs=means,
        statistics={"mean": means, "variance": variances, "standard_deviation": stds,
                    "confidence_interval": intervals},
        advanced_results={"workers": [p["rng_info"] for p in partials],
                          "memory": processor.store.memory_stats()},
        rng_info={"generator": create_generator(config.rng_kind, seed).display_name,
                  "kind": str(config.rng_kind).lower(), "seed": seed, "workers": len(jobs),
                  "seed_stride": WORKER_SEED_STRIDE},
        execution_time=elapsed,
    )
