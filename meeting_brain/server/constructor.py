from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from meeting_brain.context import Context

from meeting_brain.constructor import ServerManagerType
from meeting_brain.server.server import ServerManager

# -------------------------------------------------------------- #
# Constructor for Dynamic Creation of Server Manager
# -------------------------------------------------------------- #


def construct_server_manager(client_type: ServerManagerType, context: "Context") -> ServerManager:
    """Construct and return a ServerManager instance for the given backend type."""

    if client_type == ServerManagerType.PRODUCTION:
        from meeting_brain.server.production.constructor import construct_server_manager

        return construct_server_manager(context)
    elif client_type == ServerManagerType.TESTING:
        from meeting_brain.server.testing.constructor import construct_server_manager

        return construct_server_manager(context)

    raise ValueError(f"Unsupported ServerManagerType: {client_type}")
