from __future__ import annotations

import numpy as np
import pytest

from core.types import ForwardSolution, ForwardSolveError, History, IterationRecord, SolveResult


def test_history_basic_aggregation() -> None:
    history = History()
    history.append(IterationRecord(iteration=0, value=2.0, grad_norm=4.0, step_size=1.0))
    history.append(IterationRecord(iteration=1, value=1.0, grad_norm=2.0, step_size=0.5))

    assert len(history) == 2
    assert history.last().value == 1.0
    assert history.values() == [2.0, 1.0]
    assert history.grad_norms() == [4.0, 2.0]
    assert history.step_sizes() == [1.0, 0.5]


def test_history_empty_raises() -> None:
    history = History()
    assert len(history) == 0
    assert history.values() == []
    with pytest.raises(IndexError):
        history.last()


def test_iteration_record_is_frozen() -> None:
    record = IterationRecord(0, 1.0, 1.0, 1.0)
    with pytest.raises(AttributeError):
        record.value = 2.0  # type: ignore[misc]


def test_solve_result_defaults_to_empty_history() -> None:
    result = SolveResult(np.zeros(2), 0.0, 0.0, 0, True, "grad_norm")
    assert len(result.history) == 0


def test_forward_solution_and_error() -> None:
    solution = ForwardSolution(np.ones(3), success=False)
    assert not solution.success
    assert issubclass(ForwardSolveError, RuntimeError)
