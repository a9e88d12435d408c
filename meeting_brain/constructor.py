import enum

# -------------------------------------------------------------- #
# Server Manager Types
# -------------------------------------------------------------- #


class ServerManagerType(enum.Enum):
    """Which set of store backends a ServerManager is built from."""

    PRODUCTION = "production"
    TESTING = "testing"
