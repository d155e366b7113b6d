"""Sum of weighted forms.

CompositeForm is the total objective handed to solvers. Members are summed in
insertion order; the Hessian is assembled from every member's triplets so a
member contributing zeros still contributes its sparsity pattern.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence

import numpy as np
import scipy.sparse as sp

from core.protocols import WeightUpdatePolicy
from core.types import LaggingPhase, Vector
from forms.base import Form

__all__ = ["CompositeForm"]


class CompositeForm:
    """Ordered, non-empty collection of forms behaving as a single objective.

    Attributes:
        forms: Members in summation order.
        weight_policy: Optional outer schedule that rewrites member weights.
    """

    def __init__(
        self, forms: Sequence[Form], weight_policy: WeightUpdatePolicy | None = None
    ) -> None:
        """Initialize the composite.

        Raises:
            ValueError: If ``forms`` is empty.
        """
        if len(forms) == 0:
            raise ValueError("CompositeForm requires at least one form")
        self.forms: tuple[Form, ...] = tuple(forms)
        self.weight_policy = weight_policy

    def __len__(self) -> int:
        return len(self.forms)

    def __iter__(self) -> Iterator[Form]:
        return iter(self.forms)

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    def value(self, x: Vector) -> float:
        total = 0.0
        for form in self.forms:
            total += form.value(x)
        return total

    def gradient(self, x: Vector) -> Vector:
        grad = np.zeros(np.asarray(x).size, dtype=float)
        for form in self.forms:
            grad += form.gradient(x)
        return grad

    def hessian(self, x: Vector) -> sp.csr_matrix:
        n = np.asarray(x).size
        rows, cols, data = [], [], []
        for form in self.forms:
            h = form.hessian(x).tocoo()
            rows.append(h.row)
            cols.append(h.col)
            data.append(h.data)
        return sp.coo_matrix(
            (np.concatenate(data), (np.concatenate(rows), np.concatenate(cols))), shape=(n, n)
        ).tocsr()

    def values_by_form(self, x: Vector) -> dict[str, float]:
        """Weighted value of each member keyed by ``<index>:<class name>``."""
        return {f"{i}:{type(f).__name__}": f.value(x) for i, f in enumerate(self.forms)}

    # -------------------------------------------------------------------------
    # Lifecycle forwarding
    # -------------------------------------------------------------------------

    def init(self, x: Vector) -> None:
        for form in self.forms:
            form.init(x)

    def solution_changed(self, x: Vector) -> None:
        for form in self.forms:
            form.solution_changed(x)

    def line_search_begin(self, x0: Vector, x1: Vector) -> None:
        for form in self.forms:
            form.line_search_begin(x0, x1)

    def line_search_end(self) -> None:
        for form in self.forms:
            form.line_search_end()

    def post_step(self, iter_num: int, x: Vector) -> None:
        for form in self.forms:
            form.post_step(iter_num, x)

    def update_quantities(self, t: float, x: Vector) -> None:
        for form in self.forms:
            form.update_quantities(t, x)

    def is_step_valid(self, x0: Vector, x1: Vector) -> bool:
        return all(form.is_step_valid(x0, x1) for form in self.forms if form.enabled)

    def max_step_size(self, x0: Vector, x1: Vector) -> float:
        step = 1.0
        for form in self.forms:
            if form.enabled:
                step = min(step, form.max_step_size(x0, x1))
        return step

    # -------------------------------------------------------------------------
    # Lagging
    # -------------------------------------------------------------------------

    def init_lagging(self, x: Vector) -> None:
        for form in self.forms:
            form.init_lagging(x)

    def update_lagging(self, x: Vector) -> None:
        for form in self.forms:
            form.update_lagging(x)

    def uses_lagging(self) -> bool:
        return any(form.uses_lagging() for form in self.forms)

    def max_lagging_iterations(self) -> int:
        lagging = [form.max_lagging_iterations() for form in self.forms if form.uses_lagging()]
        return max(lagging) if lagging else 1

    @property
    def lagging_phase(self) -> LaggingPhase:
        if all(form.lagging_phase is LaggingPhase.READY for form in self.forms):
            return LaggingPhase.READY
        return LaggingPhase.UNINITIALIZED

    # -------------------------------------------------------------------------
    # Weight policy
    # -------------------------------------------------------------------------

    def reset_weights(self) -> None:
        """Reset every member governed by the weight policy."""
        if self.weight_policy is None:
            return
        for form in self.forms:
            self.weight_policy.reset(form)

    def update_weights(self, x: Vector) -> bool:
        """Apply the weight policy to every member.

        Returns:
            True if any weight changed.
        """
        if self.weight_policy is None:
            return False
        changed = False
        for form in self.forms:
            changed = self.weight_policy.update(form, x) or changed
        return changed
