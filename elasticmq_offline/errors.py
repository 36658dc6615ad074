class ElasticMqError(Exception):
    pass


class ConfigError(ElasticMqError, ValueError):
    pass


class SpawnFailure(ElasticMqError):
    """The emulator process could not be created."""


class ProcessRuntimeError(ElasticMqError):
    """The emulator process reported a fault after it was created."""

    def __init__(self, port, error):
        self.port = port
        self.error = error
        super().__init__(f'ElasticMq process on port {port} failed: {error}')
