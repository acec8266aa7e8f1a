"""
Classic two-player games as ready-made payoff tensors.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from tabulate import tabulate

from gamesim.core.game import PayoffGame


@dataclass(frozen=True)
class GameTemplate:
    key: str
    name: str
    description: str
    strategy_names: Tuple[str, ...]
    payoff_tensor: Tuple
    difficulty: str = "beginner"
    tags: Tuple[str, ...] = field(default_factory=tuple)

    def build(self) -> PayoffGame:
        tensor = [[list(cell) for cell in row] for row in self.payoff_tensor]
        return PayoffGame(tensor, list(self.strategy_names),
                          metadata={"template": self.key, "name": self.name})


def _template(key, name, description, strategies, tensor, difficulty, *tags) -> GameTemplate:
    return GameTemplate(key, name, description, tuple(strategies),
                        tuple(tuple(tuple(cell) for cell in row) for row in tensor), difficulty, tags)


TEMPLATES: Dict[str, GameTemplate] = {t.key: t for t in (
    _template("prisoners_dilemma", "Prisoner's Dilemma",
              "Two prisoners decide whether to cooperate or defect without communication",
              ["Cooperate", "Defect"], [[[3, 3], [0, 5]], [[5, 0], [1, 1]]], "beginner", "dilemma"),
    _template("battle_of_sexes", "Battle of the Sexes",
              "Players prefer being together but disagree on the activity",
              ["Football", "Opera"], [[[2, 1], [0, 0]], [[0, 0], [1, 2]]], "intermediate", "coordination"),
    _template("chicken", "Chicken",
              "Backing down is costly but collision is catastrophic",
              ["Swerve", "Straight"], [[[0, 0], [-1, 1]], [[1, -1], [-10, -10]]], "intermediate",
              "anti-coordination"),
    _template("stag_hunt", "Stag Hunt",
              "Mutual cooperation pays best but requires trust",
              ["Hunt Stag", "Hunt Hare"], [[[3, 3], [0, 2]], [[2, 0], [1, 1]]], "beginner", "coordination"),
    _template("hawk_dove", "Hawk-Dove",
              "Aggressive and peaceful strategies compete over a resource",
              ["Hawk", "Dove"], [[[-1, -1], [3, 1]], [[1, 3], [2, 2]]], "intermediate", "anti-coordination"),
    _template("matching_pennies", "Matching Pennies",
              "Zero-sum game where one player wins what the other loses",
              ["Heads", "Tails"], [[[1, -1], [-1, 1]], [[-1, 1], [1, -1]]], "advanced", "zero-sum"),
    _template("coordination", "Pure Coordination",
              "Players want the same action but have no preference which one",
              ["Option A", "Option B"], [[[1, 1], [0, 0]], [[0, 0], [1, 1]]], "beginner", "coordination"),
    _template("public_goods", "Public Goods",
              "Contributing benefits everyone but costs the contributor",
              ["Contribute", "Free Ride"], [[[1, 1], [-1, 2]], [[2, -1], [0, 0]]], "advanced", "dilemma"),
    _template("rock_paper_scissors", "Rock Paper Scissors",
              "Cyclic dominance with a unique fully mixed equilibrium",
              ["Rock", "Paper", "Scissors"],
              [[[0, 0], [-1, 1], [1, -1]], [[1, -1], [0, 0], [-1, 1]], [[-1, 1], [1, -1], [0, 0]]],
              "advanced", "zero-sum"),
)}


def get_template(key: str) -> GameTemplate:
    try:
        return TEMPLATES[key]
    except KeyError:
        raise KeyError(f"Unknown game template: {key!r} (available: {', '.join(sorted(TEMPLATES))})") from None


def load_game(key: str) -> PayoffGame:
    """Build the PayoffGame for a named template."""
    return get_template(key).build()


def templates_by_difficulty(difficulty: str) -> List[GameTemplate]:
    return [t for t in TEMPLATES.values() if t.difficulty == difficulty]


def format_payoff_table(game: PayoffGame) -> str:
    """Bimatrix as a pipe table with "p0, p1" cells."""
    headers = ["P1 \\ P2"] + list(game.strategy_names[:game.shape[1]])
    rows = []
    for r, row in enumerate(game.table):
        rows.append([game.strategy_names[r]] + [f"{cell[0]:g}, {cell[1]:g}" for cell in row])
    return tabulate(rows, headers=headers, tablefmt="pipe")
