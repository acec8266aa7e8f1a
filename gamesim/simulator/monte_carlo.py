"""
Batched, interruptible Monte Carlo simulation of repeated play.

The iteration loop runs synchronously inside a batch and yields to the event
loop between batches; progress callbacks and the interruption flag are only
observed at those batch boundaries.
"""
import asyncio
import copy
import logging
import time
from collections import deque
from dataclasses import dataclass, field, asdict
from typing import Any, Callable, Dict, List, Optional

import nest_asyncio
from tabulate import tabulate
from tqdm.auto import tqdm

from gamesim.agent.engine import StrategyEngine
from gamesim.analysis.convergence import ConvergenceAnalyzer, ConvergenceResult
from gamesim.analysis.results import ResultsAggregator
from gamesim.constants import DEFAULT_TRACE_LIMIT
from gamesim.core.game import PayoffGame
from gamesim.errors import NoStateError
from gamesim.rng.generators import RNGManager
from gamesim.simulator.config import SimulationConfig
from gamesim.simulator.state import SimulationState

logger = logging.getLogger(__name__)

CONVERGENCE_SAMPLE_INTERVAL = 100

IDLE = "idle"
RUNNING = "running"
COMPLETED = "completed"
INTERRUPTED = "interrupted"
FAILED = "failed"


@dataclass
class SimulationResult:
    """
    Outcome of a (possibly partial) simulation run.

    Attributes:
        actual_iterations: Iterations executed across all legs of the run
        requested_iterations: Iterations asked for
        outcomes: Count per joint strategy key ("A-B")
        strategy_frequencies: Count per joint strategy key
        expected_payoffs: Mean payoff per player
        statistics: mean / variance / standard_deviation / confidence_interval per player
        convergence_analysis: Analyzer summary when convergence analysis is enabled
        advanced_results: Distribution statistics, strategy evolution and optional equilibria
        early_stop: True when the run ended before the requested iterations
        early_stop_reason: Why it ended early
        rng_info: Generator name, kind, seed and draws
        execution_time: Wall-clock seconds across all legs
        status: Final simulator status
    """
    actual_iterations: int
    requested_iterations: int
    outcomes: Dict[str, int]
    strategy_frequencies: Dict[str, int]
    expected_payoffs: List[float]
    statistics: Dict[str, List]
    convergence_analysis: Optional[Dict[str, Any]] = None
    advanced_results: Optional[Dict[str, Any]] = None
    early_stop: bool = False
    early_stop_reason: Optional[str] = None
    rng_info: Dict[str, Any] = field(default_factory=dict)
    execution_time: float = 0.0
    convergence_data: List[Dict[str, Any]] = field(default_factory=list)
    history: List[Dict[str, Any]] = field(default_factory=list)
    status: str = COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def format_table(self) -> str:
        """Outcome counts and shares as a pipe table."""
        total = max(1, self.actual_iterations)
        rows = [[key, count, f"{count / total:.4f}"]
                for key, count in sorted(self.outcomes.items(), key=lambda kv: -kv[1])]
        return tabulate(rows, headers=["Outcome", "Count", "Share"], tablefmt="pipe")

    def print_summary(self):
        print(self.format_table())
        rows = []
        for p, payoff in enumerate(self.expected_payoffs):
            low, high = self.statistics["confidence_interval"][p]
            rows.append([f"Player {p}", f"{payoff:.4f}", f"{self.statistics['variance'][p]:.4f}",
                         f"[{low:.4f}, {high:.4f}]"])
        print(tabulate(rows, headers=["Player", "Mean", "Variance", "CI"], tablefmt="pipe"))


class _RunContext:
    """Mutable state of one run, owned by the simulator."""

    def __init__(self, config: SimulationConfig):
        self.config = config
        self.game = PayoffGame(config.payoff_tensor, config.strategy_names)
        names = self.game.strategy_names
        self.keys = [[f"{names[r]}-{names[c]}" for c in range(len(names))] for r in range(len(names))]
        self.rng = RNGManager(config.rng_kind, config.seed)
        self.engine = StrategyEngine(self.game, config.player_rules, self.rng)
        self.analyzer = (ConvergenceAnalyzer(copy.deepcopy(config.convergence), config.player_count)
                         if config.convergence is not None else None)
        self.aggregator = ResultsAggregator(config.player_count, names, config.memory_config)
        self.outcomes: Dict[str, int] = {}
        self.strategy_frequencies: Dict[str, int] = {}
        self.payoff_sums = [0.0] * config.player_count
        self.convergence_data = deque(maxlen=DEFAULT_TRACE_LIMIT)
        self.history = deque(maxlen=config.history_limit) if config.track_history else None
        self.iteration = 0
        self.progress = 0.0
        self.elapsed = 0.0
        self.last_convergence: Optional[ConvergenceResult] = None

    def snapshot(self) -> SimulationState:
        return SimulationState(
            iteration=self.iteration,
            requested_iterations=self.config.iterations,
            outcomes=dict(self.outcomes),
            strategy_frequencies=dict(self.strategy_frequencies),
            player_payoffs=list(self.payoff_sums),
            convergence_data=list(self.convergence_data),
            rng_state=self.rng.get_state(),
            engine_state=copy.deepcopy(self.engine.snapshot()),
            aggregator=copy.deepcopy(self.aggregator),
            analyzer=copy.deepcopy(self.analyzer),
            history=list(self.history) if self.history is not None else [],
            progress=self.progress,
            elapsed=self.elapsed,
        )

    @classmethod
    def from_state(cls, config: SimulationConfig, state: SimulationState) -> "_RunContext":
        ctx = cls(config)
        ctx.rng.set_state(state.rng_state)
        ctx.engine.restore(copy.deepcopy(state.engine_state))
        ctx.aggregator = copy.deepcopy(state.aggregator)
        ctx.analyzer = copy.deepcopy(state.analyzer)
        ctx.outcomes = dict(state.outcomes)
        ctx.strategy_frequencies = dict(state.strategy_frequencies)
        ctx.payoff_sums = list(state.player_payoffs)
        ctx.convergence_data.extend(state.convergence_data)
        if ctx.history is not None:
            ctx.history.extend(state.history)
        ctx.iteration = state.iteration
        ctx.progress = state.progress
        ctx.elapsed = state.elapsed
        return ctx


class MonteCarloSimulator:
    """
    Runs repeated play of a two-player game and aggregates the results.

    Status moves idle -> running -> completed | interrupted | failed, and
    interrupted -> running again through resume().

    Attributes:
        status: Current status
        state: Snapshot of the last interrupted run (None otherwise)
    """

    def __init__(self):
        self.status = IDLE
        self.state: Optional[SimulationState] = None
        self._config: Optional[SimulationConfig] = None
        self._interrupt_requested = False

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    def interrupt(self) -> None:
        """Ask the running loop to stop at the next batch boundary."""
        self._interrupt_requested = True

    @property
    def can_resume(self) -> bool:
        return self.state is not None

    async def run_async(self, config: SimulationConfig) -> SimulationResult:
        """
        Validate the config and run the simulation.

        Args:
            config: Run configuration

        Returns:
            SimulationResult (partial when interrupted)
        """
        config.validate()
        if config.verbose:
            logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")
        self._config = config
        self.state = None
        self._interrupt_requested = False
        ctx = _RunContext(config)
        logger.info(f"Starting simulation: {config.iterations} iterations, "
                    f"{ctx.rng.generator_name} seed {ctx.rng.seed}")
        return await self._execute(ctx, config.on_progress)

    def run(self, config: SimulationConfig) -> SimulationResult:
        """Synchronous wrapper for run_async."""
        return self._run_sync(self.run_async(config))

    async def resume_async(self, on_progress: Optional[Callable[..., None]] = None) -> SimulationResult:
        """
        Continue the last interrupted run from its snapshot.

        Args:
            on_progress: Progress callback for the resumed leg (config's callback when None)

        Returns:
            SimulationResult covering both legs
        """
        if self.state is None or self._config is None:
            raise NoStateError("No interrupted simulation to resume")
        state, self.state = self.state, None
        self._interrupt_requested = False
        ctx = _RunContext.from_state(self._config, state)
        logger.info(f"Resuming simulation at iteration {ctx.iteration}/{self._config.iterations}")
        return await self._execute(ctx, on_progress or self._config.on_progress)

    def resume(self, on_progress: Optional[Callable[..., None]] = None) -> SimulationResult:
        """Synchronous wrapper for resume_async."""
        if self.state is None:
            raise NoStateError("No interrupted simulation to resume")
        return self._run_sync(self.resume_async(on_progress))

    @staticmethod
    def _run_sync(coro):
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is not None:
            # allow nested event loops (Jupyter, callers already inside a coroutine)
            nest_asyncio.apply(running)
            return running.run_until_complete(coro)
        loop = asyncio.new_event_loop()
        try:
            return loop.run_until_complete(coro)
        finally:
            loop.close()

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def _execute(self, ctx: _RunContext, on_progress) -> SimulationResult:
        config = ctx.config
        requested = config.iterations
        self.status = RUNNING
        started = time.perf_counter()
        bar = tqdm(total=requested, initial=ctx.iteration, desc="simulating", unit="it",
                   leave=False, disable=not config.show_progress)
        stop_reason = None
        try:
            while ctx.iteration < requested:
                if self._interrupt_requested:
                    ctx.elapsed += time.perf_counter() - started
                    return self._interrupt(ctx)
                before = ctx.iteration
                end = min(ctx.iteration + config.batch_size, requested)
                stop_reason = self._run_batch(ctx, end)
                bar.update(ctx.iteration - before)
                logger.debug(f"Batch done: {ctx.iteration}/{requested}")
                if stop_reason is not None:
                    break
                self._report(ctx, on_progress, ctx.iteration / requested * 100)
                await asyncio.sleep(0)
        except Exception:
            self.status = FAILED
            logger.exception("Simulation failed")
            raise
        finally:
            bar.close()

        ctx.elapsed += time.perf_counter() - started
        if stop_reason is not None:
            logger.info(f"Early stop at iteration {ctx.iteration}: {stop_reason}")
            self._report(ctx, on_progress, 100.0)
        self.status = COMPLETED
        logger.info(f"Simulation finished: {ctx.iteration} iterations in {ctx.elapsed:.2f}s")
        return self._build_result(ctx, early_stop=stop_reason is not None, reason=stop_reason)

    def _run_batch(self, ctx: _RunContext, end: int) -> Optional[str]:
        """Run iterations up to `end`; return a stop reason if the analyzer says stop."""
        table = ctx.game.table
        keys = ctx.keys
        engine = ctx.engine
        aggregator = ctx.aggregator
        analyzer = ctx.analyzer
        outcomes = ctx.outcomes
        frequencies = ctx.strategy_frequencies
        sums = ctx.payoff_sums
        options = analyzer.options if analyzer is not None else None

        for it in range(ctx.iteration + 1, end + 1):
            strategies = engine.select_all(it)
            row, col = strategies
            payoffs = table[row][col]
            engine.observe(strategies, payoffs)

            key = keys[row][col]
            outcomes[key] = outcomes.get(key, 0) + 1
            frequencies[key] = frequencies.get(key, 0) + 1
            sums[0] += payoffs[0]
            sums[1] += payoffs[1]
            aggregator.add(it, strategies, payoffs)
            if (it - 1) % CONVERGENCE_SAMPLE_INTERVAL == 0:
                ctx.convergence_data.append({"iteration": it - 1, "strategies": list(strategies)})
            if ctx.history is not None:
                ctx.history.append({"iteration": it, "strategies": list(strategies), "payoffs": list(payoffs)})
            ctx.iteration = it

            if analyzer is not None:
                analyzer.add_iteration(payoffs)
                if it % options.check_interval == 0:
                    ctx.last_convergence = analyzer.check_convergence(it)
                    if options.early_stopping and ctx.last_convergence.recommended_action == "stop":
                        return ctx.last_convergence.reason
        return None

    def _report(self, ctx: _RunContext, on_progress, percent: float) -> None:
        # Progress never moves backwards across legs of a run
        percent = max(ctx.progress, min(100.0, percent))
        ctx.progress = percent
        if on_progress is None:
            return
        snapshot = {
            "iteration": ctx.iteration,
            "expected_payoffs": [s / max(1, ctx.iteration) for s in ctx.payoff_sums],
            "convergence": ctx.last_convergence.to_dict() if ctx.last_convergence else None,
        }
        on_progress(percent, snapshot)

    def _interrupt(self, ctx: _RunContext) -> SimulationResult:
        self.state = ctx.snapshot()
        self.status = INTERRUPTED
        self._interrupt_requested = False
        logger.info(f"Simulation interrupted at iteration {ctx.iteration}/{ctx.config.iterations}")
        return self._build_result(ctx, early_stop=True, reason="Interrupted by user")

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def _build_result(self, ctx: _RunContext, early_stop: bool, reason: Optional[str]) -> SimulationResult:
        config = ctx.config
        statistics = ctx.aggregator.statistics()
        advanced = {
            "distribution": ctx.aggregator.distribution_statistics(),
            "strategy_distribution": ctx.aggregator.strategy_distribution(),
            "strategy_evolution": list(ctx.aggregator.evolution),
            "memory": ctx.aggregator.sample_store.memory_stats(),
        }
        if config.analyze_equilibria:
            from gamesim.solvers.analysis import analyze_game
            advanced["equilibria"] = analyze_game(config.payoff_tensor, config.strategy_names)

        return SimulationResult(
            actual_iterations=ctx.iteration,
            requested_iterations=config.iterations,
            outcomes=dict(ctx.outcomes),
            strategy_frequencies=dict(ctx.strategy_frequencies),
            expected_payoffs=list(statistics["mean"]),
            statistics=statistics,
            convergence_analysis=ctx.analyzer.summary() if ctx.analyzer is not None else None,
            advanced_results=advanced,
            early_stop=early_stop,
            early_stop_reason=reason,
            rng_info=ctx.rng.info(),
            execution_time=ctx.elapsed,
            convergence_data=list(ctx.convergence_data),
            history=list(ctx.history) if ctx.history is not None else [],
            status=self.status,
        )
