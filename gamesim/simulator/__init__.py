"""
Simulation orchestration.
"""
from gamesim.simulator.config import SimulationConfig
from gamesim.simulator.state import SimulationState
from gamesim.simulator.monte_carlo import MonteCarloSimulator, SimulationResult
from gamesim.simulator.workers import run_parallel

__all__ = ['SimulationConfig', 'SimulationState', 'MonteCarloSimulator', 'SimulationResult', 'run_parallel']
