"""A toy neutrino-oscillation experiment served over nudock.

``Experiment`` stands in for a real analysis object: a fitting client sets
oscillation parameters and systematics, then asks for the log-likelihood
at that point.  The likelihood is a simple quadratic penalty around fixed
central values, enough to drive a fitter end to end.
"""

from __future__ import annotations

import logging
import numbers
import threading
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from nudock.rpc import HandlerError

if TYPE_CHECKING:
    from nudock.dock import NuDock

__all__ = [
    "OSC_PAR_CENTRAL",
    "Experiment",
    "pong",
    "register_experiment",
]

_logger = logging.getLogger("nudock.experiment")

OSC_PAR_CENTRAL: Mapping[str, float] = {
    "Deltam2_32": 0.0025,
    "Deltam2_21": 0.000075,
    "Theta12": 0.55,
    "Theta13": 0.15,
    "Theta23": 0.5,
    "DeltaCP": 0.0,
}


def pong(request: Any) -> str:
    """Answer ``/ping``."""
    _logger.info("Received ping: %r", request)
    return "pong"


def _is_number(value: object) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


class Experiment:
    """Holds oscillation parameters and systematics, computes a fake log-likelihood.

    Systematics are centered at 0 with unit width.  Oscillation parameters
    that were never set sit at their central value and contribute nothing.
    """

    def __init__(self, central: Mapping[str, float] = OSC_PAR_CENTRAL) -> None:
        self._central = dict(central)
        self._osc_pars: dict[str, float] = {}
        self._sys_pars: dict[str, float] = {}
        self._lock = threading.Lock()

    @property
    def osc_pars(self) -> dict[str, float]:
        """Snapshot of the oscillation parameters set so far."""
        with self._lock:
            return dict(self._osc_pars)

    @property
    def sys_pars(self) -> dict[str, float]:
        """Snapshot of the systematics set so far."""
        with self._lock:
            return dict(self._sys_pars)

    def set_parameters(self, request: Mapping[str, Any]) -> dict[str, str]:
        """Store the ``osc_pars`` and ``sys_pars`` of *request*.

        Nothing is stored when any value is not a number.

        Raises:
            HandlerError: On a non-numeric value.

        """
        osc = _numeric_items(request.get("osc_pars"), "osc_param")
        sys = _numeric_items(request.get("sys_pars"), "sys_param")
        with self._lock:
            self._osc_pars.update(osc)
            self._sys_pars.update(sys)
            osc_now, sys_now = dict(self._osc_pars), dict(self._sys_pars)
        _logger.info("Set osc_pars: %s", _fmt_pars(osc_now))
        _logger.info("Set sys_pars: %s", _fmt_pars(sys_now))
        return {"status": "parameters set"}

    def log_likelihood(self, request: Any) -> dict[str, float]:
        """Return ``{"log_likelihood": ...}`` at the current parameters; *request* is ignored."""
        with self._lock:
            logl = sum((self._osc_pars.get(k, c) - c) ** 2 for k, c in self._central.items())
            logl += sum(v**2 for v in self._sys_pars.values())
        return {"log_likelihood": logl}


def _numeric_items(values: Any, kind: str) -> dict[str, float]:
    if values is None:
        return {}
    if not isinstance(values, Mapping):
        raise HandlerError(f"Invalid {kind}s: expected an object, got {type(values).__name__}")
    items: dict[str, float] = {}
    for key, value in values.items():
        if not _is_number(value):
            raise HandlerError(f"Invalid {kind} value for key: {key}")
        items[key] = float(value)
    return items


def _fmt_pars(pars: Mapping[str, float]) -> str:
    return " ".join(f"{k}={v:g}" for k, v in sorted(pars.items()))


def register_experiment(dock: NuDock, experiment: Experiment) -> None:
    """Register ``/ping``, ``/set_parameters`` and ``/log_likelihood`` on *dock*."""
    dock.register("/ping", pong)
    dock.register("/set_parameters", experiment.set_parameters)
    dock.register("/log_likelihood", experiment.log_likelihood)
