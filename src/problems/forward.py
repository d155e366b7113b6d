"""Reference forward solver: a scalar spring network.

The physical field is one stiffness per edge. The state is one displacement
per node; fixed nodes are clamped to zero. For stiffnesses y the equilibrium
minimizes

    E(u) = 0.5 u^T K(y) u - f^T u,    K(y) = sum_e y_e (e_i - e_j)(e_i - e_j)^T

and for any scalar J(u) the adjoint gives

    dJ/dy_e = -(lambda_i - lambda_j)(u_i - u_j),    K lambda = dJ/du.
"""

from __future__ import annotations

import logging
import warnings
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import scipy.sparse as sp
from scipy.sparse.csgraph import connected_components
from scipy.sparse.linalg import MatrixRankWarning, spsolve

from core.config import NonlinearSolverParams
from core.logging import ExecutionContext, get_logger
from core.types import ForwardSolution, ForwardSolveError, Vector
from forms.composite import CompositeForm
from forms.elastic import ElasticForm
from optim.registry import make_solver
from problems.nl_problem import FormProblem

__all__ = ["SpringNetworkSolver"]


class SpringNetworkSolver:
    """Equilibrium of a network of scalar springs.

    Attributes:
        n_nodes: Number of nodes.
        edges: Integer array of shape (m, 2).
        loads: Nodal loads, shape (n_nodes,).
        fixed: Indices of clamped nodes.
        floating: Free nodes with no path to a clamped node.
        num_threads: Assembly workers, taken from the execution context.
    """

    def __init__(
        self,
        n_nodes: int,
        edges: np.ndarray,
        loads: Vector,
        fixed: np.ndarray,
        solver_params: NonlinearSolverParams | None = None,
        context: ExecutionContext | None = None,
    ) -> None:
        """Initialize the network.

        Raises:
            ValueError: On malformed edges, loads or fixed indices.
        """
        self.n_nodes = int(n_nodes)
        self.edges = np.asarray(edges, dtype=int).reshape(-1, 2)
        self.loads = np.asarray(loads, dtype=float).ravel()
        self.fixed = np.unique(np.asarray(fixed, dtype=int).ravel())
        if self.edges.size and (self.edges.min() < 0 or self.edges.max() >= self.n_nodes):
            raise ValueError("edge references a node outside [0, n_nodes)")
        if np.any(self.edges[:, 0] == self.edges[:, 1]):
            raise ValueError("edges must connect two distinct nodes")
        if self.loads.shape != (self.n_nodes,):
            raise ValueError(f"loads must have shape ({self.n_nodes},), got {self.loads.shape}")
        if self.fixed.size and (self.fixed.min() < 0 or self.fixed.max() >= self.n_nodes):
            raise ValueError("fixed node index out of range")
        self.free = np.setdiff1d(np.arange(self.n_nodes), self.fixed)
        self.floating = self._floating_nodes()
        self.solver_params = solver_params or NonlinearSolverParams(solver="newton")
        self.context = context
        self.num_threads = 1 if context is None else context.num_threads
        self.logger: logging.Logger = (
            context.child("forward") if context is not None else get_logger(__name__)
        )
        self.num_solves = 0

    def _floating_nodes(self) -> np.ndarray:
        """Nodes whose connected component holds no clamped node.

        With positive stiffnesses the reduced stiffness matrix is singular
        exactly when this set is non-empty.
        """
        adjacency = sp.coo_matrix(
            (np.ones(self.edges.shape[0]), (self.edges[:, 0], self.edges[:, 1])),
            shape=(self.n_nodes, self.n_nodes),
        )
        _, labels = connected_components(adjacency, directed=False)
        anchored = np.isin(labels, labels[self.fixed])
        return np.flatnonzero(~anchored)

    @property
    def n_edges(self) -> int:
        return self.edges.shape[0]

    @property
    def field_size(self) -> int:
        return self.n_edges

    def _assemble(self, y: np.ndarray, idx: np.ndarray) -> sp.csr_matrix:
        i, j, ye = self.edges[idx, 0], self.edges[idx, 1], y[idx]
        rows = np.concatenate([i, j, i, j])
        cols = np.concatenate([i, j, j, i])
        data = np.concatenate([ye, ye, -ye, -ye])
        return sp.coo_matrix((data, (rows, cols)), shape=(self.n_nodes, self.n_nodes)).tocsr()

    def stiffness_matrix(self, field: Vector) -> sp.csr_matrix:
        """Assemble the full (n_nodes x n_nodes) stiffness matrix.

        Edges are split into ``num_threads`` chunks assembled on a worker pool.
        """
        y = np.asarray(field, dtype=float).ravel()
        n_chunks = max(1, min(self.num_threads, self.n_edges))
        chunks = np.array_split(np.arange(self.n_edges), n_chunks)
        if n_chunks == 1:
            return self._assemble(y, chunks[0])
        with ThreadPoolExecutor(max_workers=n_chunks) as executor:
            blocks = list(executor.map(lambda idx: self._assemble(y, idx), chunks))
        K = blocks[0]
        for block in blocks[1:]:
            K = K + block
        return K.tocsr()

    def _reduced(self, field: Vector) -> sp.csr_matrix:
        K = self.stiffness_matrix(field)
        return K[self.free][:, self.free]

    def solve(self, field: Vector, initial_guess: Vector | None = None) -> ForwardSolution:
        """Solve for nodal displacements.

        Returns ``success=False`` for non-positive or non-finite stiffness, for
        a network with floating nodes (singular stiffness) and when the inner
        solve does not converge.

        Raises:
            ValueError: If ``field`` has the wrong size.
        """
        y = np.asarray(field, dtype=float).ravel()
        if y.size != self.n_edges:
            raise ValueError(f"Expected {self.n_edges} edge stiffnesses, got {y.size}")
        self.num_solves += 1
        u = np.zeros(self.n_nodes)
        if not np.all(np.isfinite(y)) or np.any(y <= 0):
            self.logger.warning("forward solve rejected: non-positive stiffness")
            return ForwardSolution(u, False)
        if self.floating.size:
            self.logger.warning(
                "forward solve rejected: nodes %s are not connected to a fixed node",
                self.floating.tolist(),
            )
            return ForwardSolution(u, False)

        elastic = ElasticForm(self._reduced(y), load=self.loads[self.free])
        problem = FormProblem(CompositeForm([elastic]), self.context)
        x0 = (
            np.zeros(self.free.size)
            if initial_guess is None
            else np.asarray(initial_guess, dtype=float)[self.free]
        )
        result = make_solver(self.solver_params, self.context).minimize(problem, x0)
        u[self.free] = result.x
        if not result.converged:
            self.logger.warning("forward solve did not converge (%s)", result.status)
        return ForwardSolution(u, result.converged)

    def adjoint(self, field: Vector, solution: Vector, grad_solution: Vector) -> Vector:
        """Gradient of J wrt edge stiffness given dJ/du at the equilibrium ``solution``.

        Raises:
            ForwardSolveError: If the reduced stiffness matrix is singular.
        """
        y = np.asarray(field, dtype=float).ravel()
        u = np.asarray(solution, dtype=float).ravel()
        g = np.asarray(grad_solution, dtype=float).ravel()
        lam = np.zeros(self.n_nodes)
        if self.free.size:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", MatrixRankWarning)
                try:
                    lam_free = np.atleast_1d(spsolve(self._reduced(y).tocsc(), g[self.free]))
                except RuntimeError as exc:
                    raise ForwardSolveError(f"adjoint solve failed: {exc}") from exc
            if not np.all(np.isfinite(lam_free)):
                raise ForwardSolveError("singular stiffness in adjoint solve")
            lam[self.free] = lam_free
        i, j = self.edges[:, 0], self.edges[:, 1]
        return -(lam[i] - lam[j]) * (u[i] - u[j])
