"""Example fitting client.

Connects to ``examples/server.py`` over a unix domain socket, then loops:
draw oscillation parameters and systematics around their central values,
send them with ``/set_parameters`` and print the ``/log_likelihood``.

Run::

    python examples/client.py [ITERATIONS]
"""

from __future__ import annotations

import logging
import random
import sys
import time
from typing import Any

from nudock import OSC_PAR_CENTRAL, CommunicationType, DockConfig, NuDock, NuDockError

# Width of the random walk around each central value
_OSC_PAR_WIDTH = {
    "Deltam2_32": 0.0001,
    "Deltam2_21": 0.00001,
    "Theta13": 0.01,
    "Theta12": 0.02,
    "Theta23": 0.02,
    "DeltaCP": 10.0,
}


def randomize_parameters(request: dict[str, Any], rng: random.Random) -> None:
    """Draw new parameter values into *request* in place."""
    for key, central in OSC_PAR_CENTRAL.items():
        request["osc_pars"][key] = central + rng.gauss(0.0, 1.0) * _OSC_PAR_WIDTH[key]
    for key in request["sys_pars"]:
        request["sys_pars"][key] = rng.gauss(0.0, 1.0)


def main(iterations: int | None = None) -> int:
    """Run the fit loop; forever when *iterations* is ``None``."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    rng = random.Random()

    set_pars_request: dict[str, Any] = {
        "osc_pars": dict(OSC_PAR_CENTRAL),
        "sys_pars": {"sys1": 0.01, "sys2": 0.02},
    }

    with NuDock(DockConfig(debug=True, comm_type=CommunicationType.UNIX_DOMAIN_SOCKET)) as client:
        try:
            client.start_client()
            count = 0
            while iterations is None or count < iterations:
                randomize_parameters(set_pars_request, rng)
                client.send_request("/set_parameters", set_pars_request)
                reply = client.send_request("/log_likelihood", "")
                print(f"Log-likelihood: {reply['log_likelihood']}")
                count += 1
                time.sleep(1)
        except NuDockError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main(int(sys.argv[1]) if len(sys.argv) > 1 else None))
