"""Tests for the toy experiment handlers."""

from __future__ import annotations

import logging

import pytest

from nudock import Experiment, HandlerError, NuDock, pong, register_experiment
from nudock.experiment import OSC_PAR_CENTRAL


class TestExperiment:
    """Tests for parameter storage and the fake log-likelihood."""

    def test_pong(self) -> None:
        """``pong`` answers any request with ``"pong"``."""
        assert pong({}) == "pong"
        assert pong("anything") == "pong"

    def test_at_central_values(self, experiment: Experiment) -> None:
        """With nothing set, the log-likelihood is zero."""
        assert experiment.log_likelihood("") == {"log_likelihood": 0.0}

    def test_set_parameters_reply(self, experiment: Experiment) -> None:
        """Setting parameters stores them and acknowledges."""
        reply = experiment.set_parameters({"osc_pars": {"Theta12": 0.6}, "sys_pars": {"sys1": 0.5}})
        assert reply == {"status": "parameters set"}
        assert experiment.osc_pars == {"Theta12": 0.6}
        assert experiment.sys_pars == {"sys1": 0.5}

    def test_log_likelihood_quadratic(self, experiment: Experiment) -> None:
        """Oscillation offsets and systematics add in quadrature."""
        experiment.set_parameters({"osc_pars": {"Theta13": 0.25, "DeltaCP": -2.0}, "sys_pars": {"a": 1.0, "b": -3.0}})
        expected = 0.1**2 + 4.0 + 1.0 + 9.0
        assert experiment.log_likelihood(None)["log_likelihood"] == pytest.approx(expected)

    def test_unknown_osc_par_ignored_in_likelihood(self, experiment: Experiment) -> None:
        """Only parameters with a central value contribute."""
        experiment.set_parameters({"osc_pars": {"Sterile": 100.0}})
        assert experiment.log_likelihood("")["log_likelihood"] == 0.0

    def test_updates_merge(self, experiment: Experiment) -> None:
        """Later calls update values without dropping earlier keys."""
        experiment.set_parameters({"sys_pars": {"sys1": 1.0}})
        experiment.set_parameters({"sys_pars": {"sys2": 2.0}})
        assert experiment.sys_pars == {"sys1": 1.0, "sys2": 2.0}

    def test_integers_accepted(self, experiment: Experiment) -> None:
        """Integral values are numbers too."""
        experiment.set_parameters({"sys_pars": {"sys1": 2}})
        assert experiment.sys_pars == {"sys1": 2.0}

    @pytest.mark.parametrize("bad", ["0.1", True, None, [1.0]])
    def test_non_numeric_rejected(self, experiment: Experiment, bad: object) -> None:
        """Non-numeric values raise HandlerError and nothing is stored."""
        with pytest.raises(HandlerError, match="Invalid sys_param value for key: sys1"):
            experiment.set_parameters({"osc_pars": {"Theta12": 0.6}, "sys_pars": {"sys1": bad}})
        assert experiment.osc_pars == {}

    def test_parameter_group_must_be_object(self, experiment: Experiment) -> None:
        """``osc_pars`` must be an object."""
        with pytest.raises(HandlerError, match="expected an object"):
            experiment.set_parameters({"osc_pars": [0.1]})

    def test_custom_central_values(self) -> None:
        """Central values can be supplied."""
        experiment = Experiment({"x": 1.0})
        experiment.set_parameters({"osc_pars": {"x": 3.0}})
        assert experiment.log_likelihood("")["log_likelihood"] == 4.0

    def test_parameters_logged(self, experiment: Experiment, caplog: pytest.LogCaptureFixture) -> None:
        """Stored parameters are logged."""
        with caplog.at_level(logging.INFO, logger="nudock.experiment"):
            experiment.set_parameters({"osc_pars": {"Theta23": 0.5}})
        assert "Set osc_pars: Theta23=0.5" in caplog.text

    def test_central_values(self) -> None:
        """The six standard oscillation parameters have central values."""
        assert set(OSC_PAR_CENTRAL) == {"Deltam2_32", "Deltam2_21", "Theta12", "Theta13", "Theta23", "DeltaCP"}


class TestRegisterExperiment:
    """Tests for wiring an experiment into a session."""

    def test_registers_three_operations(self) -> None:
        """``/ping``, ``/set_parameters`` and ``/log_likelihood`` are registered."""
        dock = NuDock()
        register_experiment(dock, Experiment())
        assert dock.registry.names == ["/log_likelihood", "/ping", "/set_parameters"]
