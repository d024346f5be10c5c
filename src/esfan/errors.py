"""Exceptions raised by esfan."""

from __future__ import annotations


class EsfanError(Exception):
    """Base class for all esfan errors."""


class RegistryError(EsfanError):
    """A host registry operation could not be applied."""


class DuplicateHost(RegistryError):
    def __init__(self, name: str):
        super().__init__(f"Host '{name}' already exists")
        self.name = name


class HostNotFound(RegistryError):
    def __init__(self, name: str):
        super().__init__(f"Host '{name}' not found")
        self.name = name


class UnsupportedHostType(RegistryError):
    def __init__(self, host_type: str, supported: list[str]):
        super().__init__(
            f"Host type '{host_type}' not supported. "
            f"Supported host types are: {', '.join(supported)}"
        )
        self.host_type = host_type


class MalformedConfig(EsfanError):
    """The config file exists but cannot be turned into a registry."""


class EngineError(EsfanError):
    """An engine could not be started, driven or torn down."""


class EngineStartFailure(EngineError):
    pass


class EngineEvaluationFailure(EngineError):
    pass


class EngineTeardownFailure(EngineError):
    pass
