import math

import numpy as np
import pytest

import constants
from capsule import Capsule
from emitter import Emitter
from particle import Particle, to_world_vector

S = constants.WORLD_SCALE


def test_particle_scales_raw_inputs_once():
    raw_position = (0.1, -0.25)
    raw_velocity = (0.004, -0.002)
    particle = Particle(raw_position, raw_velocity)

    np.testing.assert_array_equal(particle.position, np.array(raw_position) * S)
    np.testing.assert_array_equal(particle.velocity, np.array(raw_velocity) * S)
    np.testing.assert_array_equal(particle.o, particle.position)
    np.testing.assert_array_equal(particle.f, np.zeros(2))
    assert particle.radius == constants.SUPPORT_RADIUS
    assert particle.is_new
    assert particle.density == 0.0 and particle.near_density == 0.0


def test_particle_from_scaled_inputs_is_not_scaled_again():
    reference = Particle((0.2, 0.3), (0.0, 0.0))
    rebuilt = Particle(reference.position, reference.velocity, scale=1.0)
    np.testing.assert_array_equal(rebuilt.position, reference.position)


def test_particle_snapshot_is_independent_of_position():
    particle = Particle((0.0, 0.0), (0.0, 0.0))
    particle.position += 1.0
    np.testing.assert_array_equal(particle.o, np.zeros(2))


def test_to_world_vector_rejects_bad_input():
    with pytest.raises(ValueError):
        to_world_vector((1.0, 2.0, 3.0))
    with pytest.raises(ValueError):
        to_world_vector((float('nan'), 0.0))


def test_capsule_scales_raw_inputs_once():
    capsule = Capsule((0.1, 0.8), (0.3, 0.5), 0.03)
    np.testing.assert_array_equal(capsule.p0, np.array([0.1, 0.8]) * S)
    np.testing.assert_array_equal(capsule.p1, np.array([0.3, 0.5]) * S)
    assert capsule.radius == 0.03 * S


def test_capsule_is_immutable():
    capsule = Capsule((0.0, 0.0), (1.0, 0.0), 0.1)
    with pytest.raises(ValueError):
        capsule.p0[0] = 5.0
    with pytest.raises(AttributeError):
        capsule.radius = 1.0


def test_capsule_eval_sign():
    capsule = Capsule((0.0, 0.0), (10.0, 0.0), 2.0, scale=1.0)
    assert capsule.eval((5.0, 1.0)) == pytest.approx(-1.0)
    assert capsule.eval((5.0, 2.0)) == pytest.approx(0.0)
    assert capsule.eval((5.0, 5.0)) == pytest.approx(3.0)
    # Beyond the end caps the distance is measured to the endpoint.
    assert capsule.eval((13.0, 4.0)) == pytest.approx(3.0)
    assert capsule.eval((-3.0, 0.0)) == pytest.approx(1.0)


def test_zero_length_capsule_is_a_disc():
    capsule = Capsule((1.0, 1.0), (1.0, 1.0), 0.5, scale=1.0)
    assert capsule.eval((1.0, 1.0)) == pytest.approx(-0.5)
    assert capsule.eval((1.0, 2.0)) == pytest.approx(0.5)


def test_zero_radius_capsule_is_accepted():
    capsule = Capsule((0.0, 0.0), (1.0, 0.0), 0.0, scale=1.0)
    assert capsule.eval((0.5, 0.0)) == pytest.approx(0.0)


def test_negative_capsule_radius_is_rejected():
    with pytest.raises(ValueError):
        Capsule((0.0, 0.0), (1.0, 0.0), -0.1)


def test_capsule_with_p1_keeps_p0_and_radius():
    capsule = Capsule((0.0, 0.0), (0.0, 0.0), 0.03)
    moved = capsule.with_p1((12.0, -4.0))
    np.testing.assert_array_equal(moved.p0, capsule.p0)
    np.testing.assert_array_equal(moved.p1, [12.0, -4.0])
    assert moved.radius == capsule.radius
    np.testing.assert_array_equal(capsule.p1, capsule.p0)


def test_emitter_defaults_and_overrides():
    emitter = Emitter((-0.1, -0.15), {'period': 0.1, 'jitter': 0.0})
    np.testing.assert_array_equal(emitter.position, np.array([-0.1, -0.15]) * S)
    assert emitter.radius == constants.EMITTER_RADIUS * S
    assert emitter.period == 0.1
    assert emitter.jitter == 0.0
    assert emitter.base_angle == constants.EMITTER_BASE_ANGLE
    assert emitter.strength == constants.EMITTER_STRENGTH


def test_emitter_eval_hit_test():
    emitter = Emitter((0.0, 0.0))
    assert emitter.eval(emitter.position) == pytest.approx(-emitter.radius)
    assert emitter.eval(emitter.position + np.array([emitter.radius, 0.0])) == pytest.approx(0.0)
    assert emitter.eval(emitter.position + np.array([2 * emitter.radius, 0.0])) > 0


def test_still_emitter_snaps_to_base_angle():
    emitter = Emitter((0.0, 0.0))
    emitter.angle = 123.0
    assert emitter.advance_angle() == emitter.base_angle


def test_rotating_emitter_advances_once_per_event():
    emitter = Emitter((0.0, 0.0), {'base_angle': 30.0, 'angular_velocity': 15.0})
    assert emitter.advance_angle() == 45.0
    assert emitter.advance_angle() == 60.0


def test_jet_direction_is_unit_and_points_up_on_screen():
    emitter = Emitter((0.0, 0.0), {'base_angle': 90.0})
    direction = emitter.jet_direction()
    assert math.hypot(*direction) == pytest.approx(1.0)
    # Screen y points down, so 90 degrees is straight up.
    np.testing.assert_allclose(direction, [0.0, -1.0], atol=1e-12)


def test_emitter_timer():
    emitter = Emitter((0.0, 0.0), {'period': 0.05})
    assert not emitter.tick(0.03)
    assert emitter.tick(0.03)
