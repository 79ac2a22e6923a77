"""Process manager exception hierarchy."""


class PmrError(Exception):
    """Base error type for registry and lifecycle failures."""


class StoreIOError(PmrError):
    """Registry document could not be read or written."""


class MalformedStoreError(PmrError):
    """Registry document exists but does not parse as a registry snapshot."""


class DuplicateNameError(PmrError):
    """A record with the same name already exists."""

    def __init__(self, name: str):
        super().__init__(f"process name already registered: {name}")
        self.name = name


class ConfigParseError(PmrError):
    """Program config descriptor is missing, unreadable or malformed."""

    def __init__(self, message: str, *, path: str = ""):
        super().__init__(message)
        self.path = path


class NotFoundError(PmrError):
    """Target resolved to no record."""

    def __init__(self, target: str):
        super().__init__(f"no process found with id or name: {target}")
        self.target = target


class ProcessControlError(PmrError):
    """OS refused a spawn or signal request."""


class SpawnError(ProcessControlError):
    """OS refused to create the process."""

    def __init__(self, message: str, *, program: str):
        super().__init__(message)
        self.program = program


class SignalError(ProcessControlError):
    """OS refused or failed to terminate a live process."""

    def __init__(self, message: str, *, pid: int):
        super().__init__(message)
        self.pid = pid
