"""
Shared numeric constants and run defaults.
"""
import numpy as np

F32_EPSILON = np.finfo(np.float32).eps
F64_EPSILON = np.finfo(np.float64).eps

# Simulation loop
DEFAULT_BATCH_SIZE = 10_000
DEFAULT_CHECK_INTERVAL = 500
DEFAULT_HISTORY_LIMIT = 1_000
# Sampled points kept for convergence traces, check history and strategy evolution
DEFAULT_TRACE_LIMIT = 1_000
WORKER_SEED_STRIDE = 7_919

# Convergence analyzer
DEFAULT_WINDOW_SIZE = 1_000
DEFAULT_MIN_ITERATIONS = 1_000
DEFAULT_MAX_ITERATIONS = 1_000_000
DEFAULT_CONFIDENCE_LEVEL = 0.95
DEFAULT_TOLERANCE = 0.01
DEFAULT_STABILITY_THRESHOLD = 0.05

# RNG quality verdict
UNIFORMITY_ALPHA = 0.05
WEAK_UNIFORMITY_ALPHA = 0.01
INDEPENDENCE_BOUND = 0.05
WEAK_INDEPENDENCE_BOUND = 0.3

# Results aggregator
EVOLUTION_INTERVAL = 100
PERCENTILES = (5, 25, 50, 75, 95)

# Solvers
PROBABILITY_TOLERANCE = 1e-8
MAX_ELIMINATION_ROUNDS = 100
ESS_INITIAL_SHARE = 0.99
ESS_RESIST_THRESHOLD = 0.9
ESS_STABILITY_THRESHOLD = 0.95
