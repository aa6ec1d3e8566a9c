"""
Tests for the state advancer and the integrator family.

Validates:
1. Constant-acceleration kinematics of advance()
2. Exactness of the parabola fit and its analytic integration
3. Pure steps: inputs untouched, time advances by exactly dt
4. Accuracy ordering of the three schemes on a one-year Sun-Earth orbit
"""

import numpy as np
import pytest

from gravsim.bodies import Body, BodyState
from gravsim.diagnostics import relative_discrepancy, total_momentum
from gravsim.dynamics import (
    REFINEMENT_PASSES,
    SCHEMES,
    advance,
    advance_all,
    estimate_orbital_period,
    estimate_timestep,
    fit_parabola,
    get_integrator,
    integrate,
    integrate_parabola,
    refine_mean_acceleration,
    step_average,
    step_euler,
    step_parabolic,
)
from gravsim.ephemeris import solar_system, sun_earth
from gravsim.system import System

ALL_STEPS = [step_euler, step_average, step_parabolic]


def _run(step, system, dt, n):
    for _ in range(n):
        system = step(system, dt)
    return system


@pytest.fixture(scope="module")
def year_reference():
    """Sun-Earth after 365 days with scheme 2 at dt = 1/32 day."""
    final, _ = integrate(sun_earth(), 1.0 / 32.0, 365 * 32, scheme=2)
    return final


class TestAdvance:
    """Tests for the constant-acceleration kinematic step."""

    def test_kinematics(self):
        """r' = r + v dt + a dt²/2, v' = v + a dt."""
        state = BodyState([1.0, 2.0, 3.0], [0.5, -1.0, 0.0])
        a = np.array([0.2, 0.0, -4.0])
        dt = 0.5

        new = advance(state, a, dt)

        assert np.allclose(new.velocity, [0.6, -1.0, -2.0])
        assert np.allclose(new.position, [1.0 + 0.25 + 0.025, 1.5, 3.0 - 0.5])

    def test_does_not_mutate(self):
        state = BodyState([1.0, 0.0, 0.0], [0.0, 1.0, 0.0])
        new = advance(state, np.array([-1.0, 0.0, 0.0]), 0.1)

        assert new is not state
        assert np.array_equal(state.position, [1.0, 0.0, 0.0])
        assert np.array_equal(state.velocity, [0.0, 1.0, 0.0])

    def test_zero_dt_identity(self):
        state = BodyState([1.0, 2.0, 3.0], [4.0, 5.0, 6.0])
        assert advance(state, np.array([7.0, 8.0, 9.0]), 0.0) == state

    def test_advance_all_pairs_by_index(self):
        states = [BodyState([0, 0, 0], [0, 0, 0]), BodyState([1, 0, 0], [0, 0, 0])]
        accs = np.array([[2.0, 0.0, 0.0], [0.0, 2.0, 0.0]])

        new = advance_all(states, accs, 1.0)

        assert np.allclose(new[0].position, [1.0, 0.0, 0.0])
        assert np.allclose(new[1].position, [1.0, 1.0, 0.0])


class TestParabola:
    """Tests for the quadratic acceleration model of scheme 3."""

    def test_fit_reproduces_coefficients(self):
        """Samples generated from known (E, F, G) fit back to them."""
        E = np.array([1.5, -2.0e-3, 0.0])
        F = np.array([-0.75, 4.0e-2, 3.0])
        G = np.array([2.0, -1.0, 1.0e-4])
        dt = 0.7

        def a(t):
            return E * t * t + F * t + G

        E_fit, F_fit, G_fit = fit_parabola(a(0.0), a(dt / 2.0), a(dt), dt)

        np.testing.assert_allclose(E_fit, E, rtol=1e-10, atol=1e-12)
        np.testing.assert_allclose(F_fit, F, rtol=1e-10, atol=1e-12)
        np.testing.assert_allclose(G_fit, G, rtol=0, atol=0)

    def test_fit_on_tables(self):
        """(N, 3) sample tables are fitted element by element."""
        rng = np.random.default_rng(7)
        E, F, G = rng.normal(size=(3, 4, 3))
        dt = 2.0

        J = G
        K = E * (dt / 2) ** 2 + F * (dt / 2) + G
        L = E * dt ** 2 + F * dt + G

        E_fit, F_fit, G_fit = fit_parabola(J, K, L, dt)

        np.testing.assert_allclose(E_fit, E, rtol=1e-10, atol=1e-12)
        np.testing.assert_allclose(F_fit, F, rtol=1e-10, atol=1e-12)
        np.testing.assert_allclose(G_fit, G)

    def test_constant_parabola_matches_advance(self):
        """With E = F = 0 the analytic integral is the constant-acceleration step."""
        state = BodyState([1.0, -2.0, 0.5], [0.1, 0.2, 0.3])
        g = np.array([0.01, -0.02, 0.03])
        zero = np.zeros(3)

        exact = integrate_parabola(state, zero, zero, g, 3.0)
        kinematic = advance(state, g, 3.0)

        assert np.allclose(exact.position, kinematic.position, rtol=1e-14)
        assert np.allclose(exact.velocity, kinematic.velocity, rtol=1e-14)

    def test_integral_of_quadratic(self):
        """a(t) = t² from rest: v = t³/3, r = t⁴/12."""
        state = BodyState([0.0, 0.0, 0.0], [0.0, 0.0, 0.0])
        E = np.array([1.0, 0.0, 0.0])
        zero = np.zeros(3)

        new = integrate_parabola(state, E, zero, zero, 2.0)

        assert new.velocity[0] == pytest.approx(8.0 / 3.0)
        assert new.position[0] == pytest.approx(16.0 / 12.0)


class TestStepContract:
    """Properties shared by every scheme."""

    @pytest.mark.parametrize("step", ALL_STEPS)
    def test_time_accumulates(self, step):
        """k steps of dt advance simulated_time by k*dt."""
        sim = sun_earth()
        out = _run(step, sim, 0.1, 10)
        assert out.simulated_time == pytest.approx(1.0, abs=1e-12)

    @pytest.mark.parametrize("step", ALL_STEPS)
    def test_zero_dt_identity(self, step):
        """A zero-length step leaves every state unchanged."""
        sim = solar_system()
        out = step(sim, 0.0)

        assert out.simulated_time == sim.simulated_time
        assert np.array_equal(out.positions(), sim.positions())
        assert np.array_equal(out.velocities(), sim.velocities())

    @pytest.mark.parametrize("step", ALL_STEPS)
    def test_input_untouched(self, step):
        sim = solar_system()
        x_before = sim.positions()
        v_before = sim.velocities()

        out = step(sim, 10.0)

        assert out is not sim
        assert sim.simulated_time == 0.0
        assert np.array_equal(sim.positions(), x_before)
        assert np.array_equal(sim.velocities(), v_before)
        assert out.names() == sim.names()

    @pytest.mark.parametrize("step", ALL_STEPS)
    def test_deterministic(self, step):
        sim = solar_system()
        a = step(sim, 5.0)
        b = step(sim, 5.0)
        assert np.array_equal(a.positions(), b.positions())
        assert np.array_equal(a.velocities(), b.velocities())

    @pytest.mark.parametrize("step", ALL_STEPS)
    def test_free_particle_straight_line(self, step):
        """A lone body moves uniformly under every scheme."""
        sim = System.from_table([("Tracer", 1.0, [1.0, 2.0, 3.0], [0.5, 0.0, -0.25])])
        out = step(sim, 4.0)
        assert np.allclose(out.positions()[0], [3.0, 2.0, 2.0])
        assert np.allclose(out.velocities()[0], [0.5, 0.0, -0.25])

    @pytest.mark.parametrize("step", ALL_STEPS)
    def test_momentum_conserved(self, step):
        sim = solar_system()
        p0 = total_momentum(sim)
        out = _run(step, sim, 10.0, 20)
        p1 = total_momentum(out)

        scale = np.sum(sim.gms() * np.linalg.norm(sim.velocities(), axis=1))
        assert np.linalg.norm(p1 - p0) < 1e-10 * scale


class TestSchemes:
    """Scheme selection and scheme-specific behaviour."""

    def test_registry(self):
        assert SCHEMES == {1: step_euler, 2: step_average, 3: step_parabolic}
        assert get_integrator(2) is step_average
        with pytest.raises(ValueError):
            get_integrator(4)
        with pytest.raises(ValueError):
            get_integrator("fast")

    def test_refinement_pass_count(self, monkeypatch):
        """Scheme 2 evaluates the force model 1 + 3 times per step."""
        import gravsim.dynamics as dynamics

        calls = []
        real = dynamics.accelerations

        def counting(bodies, states):
            calls.append(1)
            return real(bodies, states)

        monkeypatch.setattr(dynamics, "accelerations", counting)

        step_euler(sun_earth(), 1.0)
        assert len(calls) == 1

        calls.clear()
        step_average(sun_earth(), 1.0)
        assert REFINEMENT_PASSES == 3
        assert len(calls) == 1 + REFINEMENT_PASSES

        calls.clear()
        step_parabolic(sun_earth(), 1.0)
        assert len(calls) == 2 + REFINEMENT_PASSES

    def test_refinement_outputs(self):
        sim = sun_earth()
        refined = refine_mean_acceleration(sim, 1.0)

        assert refined['curr_acc'].shape == (2, 3)
        assert np.allclose(refined['mean_acc'],
                           0.5 * (refined['curr_acc'] + refined['next_acc']))
        committed = step_average(sim, 1.0)
        assert np.array_equal(
            committed.positions(),
            np.array([s.position for s in refined['next_states']]),
        )

    def test_euler_single_step_order(self):
        """Halving dt cuts scheme 1's single-step error by more than 4x."""
        def error(h):
            sim = sun_earth()
            ref = _run(step_parabolic, sim, h / 64.0, 64)
            got = step_euler(sim, h)
            return np.linalg.norm(got.state_of("Earth").position
                                  - ref.state_of("Earth").position)

        e2, e1, e_half = error(2.0), error(1.0), error(0.5)

        assert e2 / e1 > 4.0
        assert e1 / e_half > 4.0

    def test_higher_schemes_more_accurate_per_step(self):
        sim = sun_earth()
        h = 4.0
        ref = _run(step_parabolic, sim, h / 64.0, 64).state_of("Earth").position

        errs = [
            np.linalg.norm(step(sim, h).state_of("Earth").position - ref)
            for step in ALL_STEPS
        ]
        assert errs[0] > errs[1] > errs[2]


class TestSunEarthYear:
    """One year of the two-body Sun-Earth system at dt = 1 day."""

    def test_average_and_parabolic_return_to_start(self):
        sim = sun_earth()
        start = sim.state_of("Earth").position

        for scheme in (2, 3):
            final, _ = integrate(sim, 1.0, 365, scheme=scheme)
            d = relative_discrepancy(start, final.state_of("Earth").position)
            assert d < 0.01, f"scheme {scheme}: discrepancy {d:.3e}"

    def test_parabolic_beats_euler(self, year_reference):
        """Scheme 3 lands orders of magnitude closer to the reference."""
        ref = year_reference.state_of("Earth").position
        sim = sun_earth()

        d = {}
        for scheme in (1, 2, 3):
            final, _ = integrate(sim, 1.0, 365, scheme=scheme)
            assert final.simulated_time == pytest.approx(365.0)
            d[scheme] = relative_discrepancy(ref, final.state_of("Earth").position)

        assert d[3] < d[1] / 100.0
        assert d[3] < d[2]
        assert d[3] < 1e-3

    def test_euler_converges_with_smaller_dt(self, year_reference):
        ref = year_reference.state_of("Earth").position
        sim = sun_earth()

        coarse, _ = integrate(sim, 1.0, 365, scheme=1)
        fine, _ = integrate(sim, 0.25, 365 * 4, scheme=1)

        d_coarse = relative_discrepancy(ref, coarse.state_of("Earth").position)
        d_fine = relative_discrepancy(ref, fine.state_of("Earth").position)
        assert d_fine < d_coarse / 2.0


class TestIntegrate:
    """Tests for the driving loop."""

    def test_trajectory_shapes(self):
        sim = sun_earth()
        final, traj = integrate(sim, 1.0, 10, scheme=2, opts={'save_every': 2})

        # initial + steps 2, 4, 6, 8 + final
        assert traj['t'].shape == (6,)
        assert traj['x'].shape == (6, 2, 3)
        assert traj['v'].shape == (6, 2, 3)
        assert np.allclose(traj['t'], [0, 2, 4, 6, 8, 10])
        assert np.array_equal(traj['x'][-1], final.positions())
        assert np.array_equal(traj['x'][0], sim.positions())

    def test_default_saves_endpoints(self):
        _, traj = integrate(sun_earth(), 1.0, 5, scheme=1)
        assert np.allclose(traj['t'], [0.0, 5.0])

    def test_zero_steps(self):
        sim = sun_earth()
        final, traj = integrate(sim, 1.0, 0)
        assert final is sim
        assert traj['t'].shape == (1,)

    def test_bad_arguments(self):
        with pytest.raises(ValueError):
            integrate(sun_earth(), 1.0, -1)
        with pytest.raises(ValueError):
            integrate(sun_earth(), 1.0, 1, scheme=7)

    def test_verbose_output(self, capsys):
        integrate(sun_earth(), 1.0, 10, scheme=3, opts={'verbose': True})
        out = capsys.readouterr().out
        assert "Starting integration: 10 steps" in out
        assert "Integration complete!" in out
        assert "Energy drift" in out


class TestPeriodEstimate:
    def test_sun_earth_period(self):
        assert estimate_orbital_period(sun_earth()) == pytest.approx(365.256, abs=0.01)
        assert estimate_timestep(sun_earth(), 0.01) == pytest.approx(3.65256, abs=1e-3)

    def test_needs_two_bodies(self):
        with pytest.raises(ValueError):
            estimate_orbital_period(System([Body("Sun", 1.0)], [BodyState([0, 0, 0], [0, 0, 0])]))
