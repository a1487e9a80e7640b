#!/usr/bin/env python3
"""Start the sortcluster coordinator server.

Same flags as the ``sortcluster-coordinator`` console script
(``--host``, ``--port``, ``--config``, ``--log-level``).
"""

from sortcluster.coordinator.server import main

if __name__ == "__main__":
    main()
