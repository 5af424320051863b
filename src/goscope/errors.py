"""Request-level errors surfaced to callers."""


class GoscopeError(Exception):
    """Base class for failures reported back to the caller of an operation."""


class RouteNotFoundError(GoscopeError, LookupError):
    def __init__(self, route_id: str) -> None:
        super().__init__(f"Route with ID {route_id} not found")
        self.route_id = route_id
