"""Gateway error taxonomy."""


class GatewayError(Exception):
    """Base gateway error."""
    pass


class ModelNotFoundError(GatewayError):
    """Unknown model name, missing model file, or missing download URL."""
    pass


class EngineUnreachableError(GatewayError):
    """Inference engine did not accept the connection."""
    pass


class UpstreamStatusError(GatewayError):
    """Engine or download source answered with a non-success status."""

    def __init__(self, status_code: int, body: str = "", url: str | None = None):
        self.status_code = status_code
        self.body = body
        self.url = url
        message = f"upstream returned status {status_code}"
        if body:
            message = f"{message}: {body}"
        super().__init__(message)


class EngineStartTimeoutError(GatewayError):
    """Engine did not become healthy within the readiness window."""

    def __init__(self, model: str, waited: float):
        self.model = model
        self.waited = waited
        super().__init__(f"engine did not become ready for {model} within {waited:g} seconds")


class ModelIOError(GatewayError):
    """Filesystem failure while storing or removing a model file."""
    pass


class EngineStartError(GatewayError):
    """Engine process could not be spawned."""
    pass
