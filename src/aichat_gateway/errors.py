"""Error taxonomy shared by the gateway, the HTTP layer and the title pipeline."""


class GatewayError(Exception):
    """Base class for errors that map onto an HTTP response.

    ``message`` is safe to show to clients; anything more detailed belongs in
    the server log.
    """

    status_code = 500
    message = "Internal error"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class UnknownModel(GatewayError):
    status_code = 400

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown model: {name}")


class MissingCredential(GatewayError):
    status_code = 400

    def __init__(self, header: str | None = None):
        self.header = header
        if header:
            super().__init__(f"Missing API key header: {header}")
        else:
            super().__init__("At least one API key is required to enable chat title generation.")


class UnsupportedProvider(GatewayError):
    """The registry names a provider the gateway has no client factory for."""

    status_code = 500

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"Unsupported provider: {provider}")


class UpstreamGenerationFailure(GatewayError):
    status_code = 500
    message = "Failed to generate response"


class PersistenceFailure(GatewayError):
    status_code = 500
    message = "Failed to save thread"
