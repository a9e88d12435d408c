import asyncio
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from meeting_brain.server.server import ServerManager
    from meeting_brain.services.manager import ServicesManager

# -------------------------------------------------------------- #
# Context Class
# -------------------------------------------------------------- #


class Context:
    """
    Holds the process-wide handles of one running pipeline.

    Built once by the entry point (or a test fixture) and handed to every
    manager: the ServerManager owning the store connections, the
    ServicesManager owning the pipeline services, and the shutdown flag that
    makes new ingestions fail fast while the pipeline is stopping.
    """

    def __init__(self):
        self.server_manager: "ServerManager | None" = None
        self.services_manager: "ServicesManager | None" = None
        self._shutdown_event = asyncio.Event()

    def set_server_manager(self, server_manager: "ServerManager") -> None:
        self.server_manager = server_manager

    def set_services_manager(self, services_manager: "ServicesManager") -> None:
        self.services_manager = services_manager

    def require_services(self) -> "ServicesManager":
        """
        The started services manager.

        Raises:
            RuntimeError: The pipeline has not been started on this context
        """
        if self.services_manager is None:
            raise RuntimeError("Pipeline services are not started")
        return self.services_manager

    # -------------------------------------------------------------- #
    # Shutdown
    # -------------------------------------------------------------- #

    def is_shutting_down(self) -> bool:
        return self._shutdown_event.is_set()

    def mark_shutdown_started(self) -> None:
        self._shutdown_event.set()
