import numpy as np
import pytest

from conftest import circle_curve, circle_points
from vortexknots.analysis.topology import TopologyAnalyzer, writhe_density
from vortexknots.model.curve import Curve
from vortexknots.model.geometry import trefoil


def twisted_ring(radius: float, n: int, turns: int) -> Curve:
    """Ring whose frame rotates ``turns`` times in the right-handed sense about the tangent."""
    t = np.linspace(0.0, 2.0 * np.pi, n, endpoint=False)
    e_r = np.c_[np.cos(t), np.sin(t), np.zeros(n)]
    e_z = np.tile([0.0, 0.0, 1.0], (n, 1))
    frame = np.cos(turns * t)[:, None] * e_r - np.sin(turns * t)[:, None] * e_z
    return Curve(points=circle_points(radius, n), frame=frame)


def test_circle_geometry():
    curve = TopologyAnalyzer().analyze(circle_curve(5.0, 200))
    np.testing.assert_allclose(curve.curvature, 1.0 / 5.0, rtol=1e-9)
    np.testing.assert_allclose(curve.torsion, 0.0, atol=1e-9)
    assert curve.length == pytest.approx(curve.perimeter)
    assert curve.length == pytest.approx(2.0 * np.pi * 5.0, rel=1e-3)


def test_planar_curve_has_no_writhe():
    curve = TopologyAnalyzer().analyze(circle_curve(5.0, 200))
    np.testing.assert_allclose(curve.writhe_density, 0.0, atol=1e-12)
    assert curve.writhe == pytest.approx(0.0, abs=1e-10)


def test_constant_frame_has_no_twist():
    curve = TopologyAnalyzer().analyze(circle_curve(5.0, 200))
    assert curve.twist == pytest.approx(0.0, abs=1e-12)


@pytest.mark.parametrize("turns", [1, 2, -3])
def test_twist_counts_frame_turns(turns):
    curve = TopologyAnalyzer().analyze(twisted_ring(4.0, 400, turns))
    assert curve.twist == pytest.approx(turns, abs=0.05)


def test_twist_density_is_continuous_across_the_wrap():
    curve = TopologyAnalyzer().analyze(twisted_ring(4.0, 400, 2))
    density = curve.twist_density
    assert density[-1] == pytest.approx(density[0], rel=1e-2)
    assert np.ptp(density) < 0.05 * np.mean(np.abs(density))


def test_straight_runs_have_zero_torsion():
    side = np.linspace(0.0, 1.0, 10, endpoint=False)
    zeros = np.zeros_like(side)
    square = np.vstack((
        np.c_[side, zeros, zeros],
        np.c_[np.ones_like(side), side, zeros],
        np.c_[1.0 - side, np.ones_like(side), zeros],
        np.c_[zeros, 1.0 - side, zeros],
    ))
    curve = TopologyAnalyzer().analyze(Curve(points=square))
    assert np.all(np.isfinite(curve.torsion))
    np.testing.assert_allclose(curve.torsion, 0.0, atol=1e-12)
    assert curve.curvature[2] == pytest.approx(0.0)


def test_trefoil_writhe_is_scale_invariant_and_chiral():
    points = trefoil(300)
    writhe = np.sum(writhe_density(points) * np.linalg.norm(np.roll(points, -1, axis=0) - points, axis=1))
    scaled = TopologyAnalyzer().analyze(Curve(points=3.0 * points))
    mirrored = TopologyAnalyzer().analyze(Curve(points=points * [1.0, 1.0, -1.0]))

    assert abs(writhe) > 1.0
    assert scaled.writhe == pytest.approx(writhe, rel=1e-9)
    assert mirrored.writhe == pytest.approx(-writhe, rel=1e-9)


def test_helix_like_curve_has_nonzero_torsion():
    t = np.linspace(0.0, 2.0 * np.pi, 300, endpoint=False)
    # (2, 3) torus knot
    r = 3.0 + np.cos(3.0 * t)
    points = np.c_[r * np.cos(2.0 * t), r * np.sin(2.0 * t), -np.sin(3.0 * t)]
    curve = TopologyAnalyzer().analyze(Curve(points=points))
    assert np.all(np.isfinite(curve.torsion))
    assert np.mean(np.abs(curve.torsion)) > 1e-2


def test_segment_lengths_and_totals_agree():
    curve = TopologyAnalyzer().analyze(twisted_ring(4.0, 100, 1))
    assert curve.length == pytest.approx(np.sum(curve.segment_length))
    assert curve.twist == pytest.approx(np.sum(curve.twist_density * curve.segment_length))
    summary = curve.summary(time=1.5, component=0)
    assert summary.twist == curve.twist
    assert summary.length == curve.length
