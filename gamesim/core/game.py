"""
Payoff game representation for simulation and analysis.

A two-player strategic-form game is stored as a payoff tensor laid out as
tensor[row][col] -> (payoff_p0, payoff_p1), where player 0 picks the row and
player 1 picks the column.
"""
import json
import math
import numbers

import numpy as np
import torch
from typing import Dict, List, Optional, Sequence, Tuple

from gamesim.errors import ConfigurationError

SUPPORTED_PLAYER_COUNT = 2


def validate_payoff_tensor(payoff_tensor, player_count: int = SUPPORTED_PLAYER_COUNT) -> Tuple[int, int]:
    """
    Check the shape and contents of a nested payoff tensor.

    Args:
        payoff_tensor: Nested sequence [row][col][player]
        player_count: Number of payoffs expected in every cell

    Returns:
        (num_rows, num_cols)
    """
    if player_count != SUPPORTED_PLAYER_COUNT:
        raise ConfigurationError(
            f"Only 2-player payoff tensors are supported (got player_count={player_count})")
    if torch.is_tensor(payoff_tensor) or isinstance(payoff_tensor, np.ndarray):
        payoff_tensor = payoff_tensor.tolist()
    if payoff_tensor is None or len(payoff_tensor) == 0:
        raise ConfigurationError("Payoff tensor is empty")
    num_cols = len(payoff_tensor[0])
    if num_cols == 0:
        raise ConfigurationError("Payoff tensor has an empty row")
    for r, row in enumerate(payoff_tensor):
        if len(row) != num_cols:
            raise ConfigurationError(
                f"Payoff tensor row {r} has {len(row)} columns, expected {num_cols}")
        for c, cell in enumerate(row):
            if len(cell) != player_count:
                raise ConfigurationError(
                    f"Payoff cell ({r}, {c}) has {len(cell)} entries, expected {player_count}")
            for value in cell:
                if isinstance(value, bool) or not isinstance(value, numbers.Real) or not math.isfinite(float(value)):
                    raise ConfigurationError(f"Payoff cell ({r}, {c}) holds a non-numeric or non-finite value: {value!r}")
    return len(payoff_tensor), num_cols


class PayoffGame:
    """
    A validated two-player payoff tensor with the usual game queries.

    Attributes:
        table: Payoffs as a nested python list (fast scalar lookup)
        tensor: Payoffs as a float64 torch tensor of shape (rows, cols, 2)
        strategy_names: Names of the strategies (shared by both players in square games)
        metadata: Free-form metadata
    """

    def __init__(self, payoff_tensor, strategy_names: Optional[Sequence[str]] = None,
                 metadata: Optional[Dict] = None):
        if torch.is_tensor(payoff_tensor) or isinstance(payoff_tensor, np.ndarray):
            payoff_tensor = payoff_tensor.tolist()
        rows, cols = validate_payoff_tensor(payoff_tensor)
        self.table = [[[float(v) for v in cell] for cell in row] for row in payoff_tensor]
        self.tensor = torch.tensor(self.table, dtype=torch.float64)
        self.shape = (rows, cols)
        if strategy_names is None:
            strategy_names = [f"S{i}" for i in range(max(rows, cols))]
        self.strategy_names = list(strategy_names)
        self.metadata = metadata or {}

    @property
    def num_players(self) -> int:
        return SUPPORTED_PLAYER_COUNT

    @property
    def num_strategies(self) -> int:
        """Strategy count of a square game (row count otherwise)."""
        return self.shape[0]

    @property
    def is_square(self) -> bool:
        return self.shape[0] == self.shape[1]

    def payoff(self, row: int, col: int) -> List[float]:
        return self.table[row][col]

    def player_matrix(self, player: int) -> torch.Tensor:
        """
        Payoff matrix of one player with that player's own strategy on the rows.

        Args:
            player: 0 (row player) or 1 (column player)

        Returns:
            Tensor of shape (own strategies, opponent strategies)
        """
        if player == 0:
            return self.tensor[:, :, 0]
        return self.tensor[:, :, 1].T

    def payoff_range(self, player: int) -> float:
        values = self.tensor[:, :, player]
        return float(values.max() - values.min())

    def deviation_payoffs(self, mixtures: Sequence[torch.Tensor]) -> List[torch.Tensor]:
        """
        Expected payoff of every pure strategy against the opponent's mixture.

        Args:
            mixtures: (row mixture, column mixture)

        Returns:
            [payoffs for each row strategy, payoffs for each column strategy]
        """
        x, y = (torch.as_tensor(m, dtype=torch.float64) for m in mixtures)
        return [self.player_matrix(0) @ y, self.player_matrix(1) @ x]

    def expected_payoffs(self, mixtures: Sequence[torch.Tensor]) -> List[float]:
        x, y = (torch.as_tensor(m, dtype=torch.float64) for m in mixtures)
        dev = self.deviation_payoffs((x, y))
        return [float(x @ dev[0]), float(y @ dev[1])]

    def player_regrets(self, mixtures: Sequence[torch.Tensor]) -> List[float]:
        x, y = (torch.as_tensor(m, dtype=torch.float64) for m in mixtures)
        dev = self.deviation_payoffs((x, y))
        return [max(0.0, float(dev[0].max() - x @ dev[0])),
                max(0.0, float(dev[1].max() - y @ dev[1]))]

    def regret(self, mixtures: Sequence[torch.Tensor]) -> float:
        """Largest gain any player can get by deviating to a pure strategy."""
        return max(self.player_regrets(mixtures))

    def pure_mixture(self, player: int, strategy: int) -> torch.Tensor:
        size = self.shape[player]
        mixture = torch.zeros(size, dtype=torch.float64)
        mixture[strategy] = 1.0
        return mixture

    def restrict(self, rows: Sequence[int], cols: Sequence[int]) -> List[List[List[float]]]:
        """Sub-tensor keeping the given row and column strategies."""
        return [[list(self.table[r][c]) for c in cols] for r in rows]

    def to_dict(self) -> Dict:
        return {
            "payoff_tensor": self.table,
            "strategy_names": self.strategy_names,
            "metadata": self.metadata,
        }

    def save(self, filepath: str):
        """Save the game to a JSON file."""
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, filepath: str) -> 'PayoffGame':
        with open(filepath) as f:
            data = json.load(f)
        return cls(data["payoff_tensor"], data.get("strategy_names"), data.get("metadata"))

    def __repr__(self):
        return f"PayoffGame({self.shape[0]}x{self.shape[1]}, strategies={self.strategy_names})"
