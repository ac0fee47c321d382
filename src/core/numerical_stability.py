# numerical_stability.py
"""
數值穩定性監控
掃描場中的NaN/Inf，並提供每場的極值統計
"""

import logging
from typing import Dict, Iterable

import numpy as np
import taichi as ti

from src.core.fields import Field

logger = logging.getLogger('StableFluid.Stability')


@ti.data_oriented
class NumericalStabilityMonitor:
    """數值穩定性監控器"""

    def __init__(self):
        self.history = []
        self.consecutive_anomalies = 0

    @ti.kernel
    def _count_non_finite(self, field: ti.types.ndarray(), components: ti.template()) -> ti.i32:
        count = 0
        for i, j in ti.ndrange(field.shape[0], field.shape[1]):
            if ti.static(components == 1):
                v = field[i, j]
                if ti.math.isnan(v) or ti.math.isinf(v):
                    count += 1
            else:
                bad = 0
                for c in ti.static(range(components)):
                    v = field[i, j][c]
                    if ti.math.isnan(v) or ti.math.isinf(v):
                        bad = 1
                count += bad
        return count

    def count_non_finite(self, field: Field) -> int:
        """返回含有NaN/Inf分量的格點數"""
        return int(self._count_non_finite(field.data, field.components))

    def scan(self, fields: Iterable[Field], tick: int = -1) -> Dict[str, int]:
        """
        掃描多個場

        Returns:
            {場名稱: 非有限格點數}，只包含有異常的場
        """
        report = {}
        for field in fields:
            bad = self.count_non_finite(field)
            if bad > 0:
                report[field.name] = bad

        if report:
            self.consecutive_anomalies += 1
            self.history.append((tick, report))
            if len(self.history) > 100:  # 保持最近100筆
                self.history.pop(0)
            logger.warning(f"⚠️  第{tick}步發現非有限值: {report}")
        else:
            self.consecutive_anomalies = 0
        return report

    @staticmethod
    def field_statistics(field: Field) -> Dict[str, float]:
        """場的極值與平均 (向量場以分量長度計算)"""
        data = field.to_numpy()
        if data.ndim == 3:
            data = np.linalg.norm(data, axis=-1)
        finite = data[np.isfinite(data)]
        if finite.size == 0:
            return {'min': float('nan'), 'max': float('nan'), 'mean': float('nan'), 'finite_ratio': 0.0}
        return {
            'min': float(finite.min()),
            'max': float(finite.max()),
            'mean': float(finite.mean()),
            'finite_ratio': finite.size / data.size,
        }
