#!/usr/bin/env python3
"""
noise_seeding.py 測試套件
"""

import numpy as np
import pytest

from src.core.fields import FieldKind
from src.physics.noise_seeding import NoiseOrigin, perlin_noise, seed_array, seed_field


def test_perlin_range():
    xs, ys = np.meshgrid(np.linspace(0, 10, 50), np.linspace(0, 10, 50), indexing="ij")
    values = perlin_noise(xs, ys, seed=3)
    assert values.min() >= 0.0
    assert values.max() <= 1.0
    # 整數晶格點上的梯度噪聲為 0，映射後為 0.5
    assert perlin_noise(np.array([2.0]), np.array([5.0]))[0] == pytest.approx(0.5)


class TestSeedArray:
    """種子陣列測試"""

    def test_range_and_shape(self):
        data = seed_array(32, 24, -2.0, 3.0, scale=4.0, components=2)
        assert data.shape == (32, 24, 2)
        assert data.dtype == np.float32
        assert data.min() >= -2.0
        assert data.max() <= 3.0
        assert data.std() > 0.0

    def test_scalar_shape(self):
        assert seed_array(8, 8, 0.0, 1.0).shape == (8, 8)

    def test_deterministic(self):
        origin = NoiseOrigin(x=1.5, y=-3.0, seed=7)
        a = seed_array(16, 16, 0.0, 1.0, scale=3.0, components=4, origin=origin)
        b = seed_array(16, 16, 0.0, 1.0, scale=3.0, components=4, origin=origin)
        np.testing.assert_array_equal(a, b)

    def test_origin_changes_output(self):
        a = seed_array(16, 16, 0.0, 1.0, scale=3.0, origin=NoiseOrigin(x=0.0))
        b = seed_array(16, 16, 0.0, 1.0, scale=3.0, origin=NoiseOrigin(x=0.37))
        assert not np.array_equal(a, b)

    def test_channels_are_independent(self):
        data = seed_array(32, 32, 0.0, 1.0, scale=4.0, components=2)
        assert not np.allclose(data[..., 0], data[..., 1])

    def test_constant_range(self):
        data = seed_array(8, 8, 0.5, 0.5, scale=2.0)
        assert np.all(data == 0.5)


class TestSeedField:
    def test_kinds(self):
        for components, kind in [(1, FieldKind.SCALAR), (2, FieldKind.VEC2), (4, FieldKind.VEC4)]:
            field = seed_field(8, 8, 0.0, 1.0, 2.0, components=components)
            assert field.kind == kind
            np.testing.assert_allclose(field.to_numpy(),
                                       seed_array(8, 8, 0.0, 1.0, 2.0, components=components))
            field.release()

    def test_unsupported_components(self):
        with pytest.raises(ValueError):
            seed_field(8, 8, 0.0, 1.0, components=3)
