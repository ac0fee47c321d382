#!/usr/bin/env python3
"""
numerical_stability.py 測試套件
測試非有限值掃描與場統計
"""

import numpy as np
import pytest

from src.core.fields import Field, FieldKind
from src.core.numerical_stability import NumericalStabilityMonitor


@pytest.fixture
def stability_monitor():
    """創建數值穩定性監控器實例"""
    return NumericalStabilityMonitor()


@pytest.fixture
def fields():
    scalar = Field(8, 8, FieldKind.SCALAR, "pressure")
    vector = Field(8, 8, FieldKind.VEC2, "velocity")
    color = Field(8, 8, FieldKind.VEC4, "dye")
    for f in (scalar, vector, color):
        f.fill(0.5)
    yield scalar, vector, color
    for f in (scalar, vector, color):
        f.release()


class TestNumericalStabilityMonitor:
    """數值穩定性監控器測試類"""

    def test_clean_fields(self, stability_monitor, fields):
        for f in fields:
            assert stability_monitor.count_non_finite(f) == 0
        assert stability_monitor.scan(fields, tick=0) == {}
        assert stability_monitor.consecutive_anomalies == 0

    def test_scalar_nan(self, stability_monitor, fields):
        scalar = fields[0]
        data = scalar.to_numpy()
        data[1, 2] = np.nan
        data[3, 3] = np.inf
        scalar.from_numpy(data)
        assert stability_monitor.count_non_finite(scalar) == 2

    def test_vector_counts_cells(self, stability_monitor, fields):
        """同一格點多個分量異常只算一次"""
        color = fields[2]
        data = color.to_numpy()
        data[0, 0, 0] = np.nan
        data[0, 0, 3] = -np.inf
        data[5, 5, 1] = np.nan
        color.from_numpy(data)
        assert stability_monitor.count_non_finite(color) == 2

    def test_scan_reports_only_anomalous(self, stability_monitor, fields):
        vector = fields[1]
        data = vector.to_numpy()
        data[4, 4, 1] = np.nan
        vector.from_numpy(data)

        report = stability_monitor.scan(fields, tick=12)
        assert report == {"velocity": 1}
        assert stability_monitor.consecutive_anomalies == 1
        assert stability_monitor.history[-1] == (12, {"velocity": 1})

        stability_monitor.scan(fields, tick=13)
        assert stability_monitor.consecutive_anomalies == 2

    def test_field_statistics(self, fields):
        vector = fields[1]
        vector.fill(3.0)
        stats = NumericalStabilityMonitor.field_statistics(vector)
        assert stats['max'] == pytest.approx(np.sqrt(18.0))
        assert stats['finite_ratio'] == 1.0

    def test_field_statistics_all_nan(self, fields):
        scalar = fields[0]
        scalar.fill(float("nan"))
        stats = NumericalStabilityMonitor.field_statistics(scalar)
        assert stats['finite_ratio'] == 0.0
        assert np.isnan(stats['mean'])
