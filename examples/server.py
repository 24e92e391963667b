"""Example experiment server.

Serves ``/ping``, ``/set_parameters`` and ``/log_likelihood`` over a unix
domain socket, with schema validation enabled.  A plain function and the
bound methods of an ``Experiment`` are registered side by side.

Start the server::

    python examples/server.py

Then run the client in another terminal::

    python examples/client.py
"""

from __future__ import annotations

import logging

from nudock import CommunicationType, DockConfig, Experiment, NuDock, pong


def main() -> None:
    """Register the experiment's operations and serve until interrupted."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    experiment = Experiment()
    dock = NuDock(DockConfig(debug=True, comm_type=CommunicationType.UNIX_DOMAIN_SOCKET))

    # A free function...
    dock.register("/ping", pong)
    # ...or methods bound to an object holding state
    dock.register("/set_parameters", experiment.set_parameters)
    dock.register("/log_likelihood", experiment.log_likelihood)

    dock.start_server()


if __name__ == "__main__":
    main()
