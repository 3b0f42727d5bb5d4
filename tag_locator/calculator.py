from __future__ import annotations

from typing import Union

import numpy as np
from scipy import optimize, stats

from .models import CandidateSet, LocationEstimate, SkipReason, SolverFailure

SolverOutcome = Union[LocationEstimate, SolverFailure]


class MultilaterationSolver:
    """
    非线性最小二乘三边定位（Levenberg-Marquardt）

    以候选节点坐标的质心为初值，拟合使
    sum((d_i - ||p - n_i||)^2) 最小的 p = (x, y)，
    再由渐近协方差给出各坐标的 t 分布置信区间。
    不做随机多起点，同样的输入得到同样的结果。
    """

    def __init__(
        self,
        max_iterations: int = 200,
        tolerance: float = 1e-10,
        confidence_level: float = 0.95,
        rcond: float = 1e-8,
        geometry_rcond: float = 1e-4,
    ):
        self.max_iterations = max_iterations
        self.tolerance = tolerance
        self.confidence_level = confidence_level
        # 雅可比最小/最大奇异值之比低于此值视为奇异
        self.rcond = rcond
        # 节点布局（去中心化坐标）的奇异值之比，低于此值视为共线
        self.geometry_rcond = geometry_rcond

    @staticmethod
    def residuals(p: np.ndarray, anchors: np.ndarray, distances: np.ndarray) -> np.ndarray:
        return distances - np.hypot(p[0] - anchors[:, 0], p[1] - anchors[:, 1])

    @staticmethod
    def jacobian(p: np.ndarray, anchors: np.ndarray, distances: np.ndarray) -> np.ndarray:
        diff = p - anchors
        norms = np.hypot(diff[:, 0], diff[:, 1])
        J = np.zeros_like(diff)
        # 与节点重合时导数无定义，该行置零
        nz = norms > 0
        J[nz] = -diff[nz] / norms[nz, None]
        return J

    def is_singular(self, J: np.ndarray) -> bool:
        s = np.linalg.svd(J, compute_uv=False)
        return s[0] == 0 or s[-1] <= self.rcond * s[0]

    def is_collinear(self, anchors: np.ndarray) -> bool:
        s = np.linalg.svd(anchors - anchors.mean(axis=0), compute_uv=False)
        return s[0] == 0 or s[-1] <= self.geometry_rcond * s[0]

    def solve(self, candidates: CandidateSet) -> SolverOutcome:
        anchors = np.array([[o.x, o.y] for o in candidates], dtype=float)
        distances = np.array([o.distance for o in candidates], dtype=float)
        n = len(distances)

        def failure(reason: SkipReason, message: str) -> SolverFailure:
            return SolverFailure(candidates.tag_id, candidates.bucket_start, reason, message)

        if n < 3:
            return failure(SkipReason.INSUFFICIENT_CANDIDATES, f"{n} nodes, need 3")
        if self.is_collinear(anchors):
            return failure(SkipReason.SINGULAR_FIT, "collinear node geometry")

        x0 = anchors.mean(axis=0)
        try:
            res = optimize.least_squares(
                self.residuals,
                x0,
                jac=self.jacobian,
                args=(anchors, distances),
                method="lm",
                xtol=self.tolerance,
                ftol=self.tolerance,
                gtol=self.tolerance,
                max_nfev=self.max_iterations,
            )
        except (ValueError, np.linalg.LinAlgError) as e:
            return failure(SkipReason.SOLVER_DIVERGENCE, str(e))

        p = res.x
        if not np.all(np.isfinite(p)):
            return failure(SkipReason.SOLVER_DIVERGENCE, "non-finite estimate")

        J = self.jacobian(p, anchors, distances)
        if self.is_singular(J):
            return failure(SkipReason.SINGULAR_FIT, "degenerate node geometry")
        if not res.success:
            return failure(SkipReason.SOLVER_DIVERGENCE, res.message)

        # 残差方差 s^2 = RSS / (n - p)，参数个数 p = 2
        dof = n - 2
        rss = float(np.sum(self.residuals(p, anchors, distances) ** 2))
        cov = np.linalg.inv(J.T @ J) * (rss / dof)
        se = np.sqrt(np.clip(np.diag(cov), 0.0, None))
        q = stats.t.ppf(0.5 + self.confidence_level / 2.0, dof)
        half = q * se

        x, y = float(p[0]), float(p[1])
        return LocationEstimate(
            tag_id=candidates.tag_id,
            bucket_start=candidates.bucket_start,
            node_count=n,
            x=x,
            y=y,
            x_lower=x - float(half[0]),
            x_upper=x + float(half[0]),
            y_lower=y - float(half[1]),
            y_upper=y + float(half[1]),
        )
