"""Errors raised while assembling the platform graph."""


class PlatformError(Exception):
    """Base class for graph assembly errors."""


class InvalidConfigError(PlatformError):
    """An application IAM config (or other input) is malformed or incomplete."""

    def __init__(self, message: str, app_name: str | None = None):
        super().__init__(message)
        self.app_name = app_name


class DuplicateRoleError(InvalidConfigError):
    """Two application configs derive the same IAM role identity."""

    def __init__(self, role_name: str, first_app: str, second_app: str):
        super().__init__(
            f"Applications '{first_app}' and '{second_app}' both derive IAM role "
            f"'{role_name}'; give one of them a different appName or namespace",
            app_name=second_app,
        )
        self.role_name = role_name
        self.first_app = first_app


class UnresolvedValueError(PlatformError):
    """A late-bound value was used where a concrete graph-node id is required."""


class NotInitializedError(PlatformError):
    """A cluster-scoped provider handle was requested before promotion."""


class GraphError(PlatformError):
    """The dependency graph is inconsistent (duplicate ids, dangling edges, cycles)."""


class GraphFrozenError(GraphError):
    """The graph was modified after assembly finished."""
