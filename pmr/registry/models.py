from enum import Enum
from typing import List

from pydantic import BaseModel, Field

DEFAULT_NAMESPACE = "default"
MAX_RESTARTS = 2**32 - 1


class ProcessStatus(str, Enum):
    STARTING = "starting"
    RUNNING = "running"
    STOPPED = "stopped"


class ProcessRecord(BaseModel):
    id: int = Field(ge=1)
    pid: int = Field(default=0, ge=0)
    name: str
    namespace: str = DEFAULT_NAMESPACE
    status: ProcessStatus = ProcessStatus.STOPPED
    program: str
    workdir: str = ""
    args: List[str] = Field(default_factory=list)
    restarts: int = Field(default=0, ge=0, le=MAX_RESTARTS)


class RegistrySnapshot(BaseModel):
    last_id: int = Field(default=0, ge=0)
    processes: List[ProcessRecord] = Field(default_factory=list)

    def next_id(self) -> int:
        highest = max((record.id for record in self.processes), default=0)
        return max(self.last_id, highest) + 1

    def find(self, record_id: int) -> ProcessRecord | None:
        for record in self.processes:
            if record.id == record_id:
                return record
        return None


class ProgramConfig(BaseModel):
    """Config descriptor used to seed a new record."""

    name: str
    program: str
    args: List[str] = Field(default_factory=list)
