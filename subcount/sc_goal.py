"""
Goal tracking policy.

The goal is the next round-number milestone above the last observed count.
When a new count reaches or passes the goal, the old goal becomes the
previous goal and a new one is computed:

    goal := ceil((value + 1) / step) * step

Only the immediately prior goal is kept. A jump across several step
boundaries in one poll (805 -> 850 with step 10) records a single advance.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class GoalUpdate:
    goal: int
    previous_goal: int
    advanced: bool


def next_goal(value: int, step: int) -> int:
    """Smallest multiple of step strictly greater than value."""
    # ceil((value + 1) / step) == (value + step) // step for non-negative ints
    return ((value + step) // step) * step


def advance_goal(goal: int, previous_goal: int, value: int, step: int) -> GoalUpdate:
    """
    Map a freshly observed value onto the next (goal, previous_goal) pair.

    Raises:
        ValueError: step is not positive or value is negative.
    """
    if step <= 0:
        raise ValueError(f"step must be positive, got {step}")
    if value < 0:
        raise ValueError(f"observed value must be >= 0, got {value}")

    if value >= goal:
        return GoalUpdate(goal=next_goal(value, step), previous_goal=goal, advanced=True)
    return GoalUpdate(goal=goal, previous_goal=previous_goal, advanced=False)
