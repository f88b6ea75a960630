from __future__ import annotations

from pydantic import BaseModel, Field

BYTES_PER_GB = 1024**3
MB_PER_GB = 1024


class ResourceLimits(BaseModel):
    """Configured limits of an instance as reported by the panel. 0 means unlimited."""

    cpu: float = Field(0, ge=0, description="CPU limit in percent (100 = one core).")
    memory: float = Field(0, ge=0, description="Memory limit in MB.")
    disk: float = Field(0, ge=0, description="Disk limit in MB.")

    @property
    def memory_gb(self) -> float:
        return self.memory / MB_PER_GB

    @property
    def disk_gb(self) -> float:
        return self.disk / MB_PER_GB


class Instance(BaseModel):
    """A monitored instance resolved from the panel directory for one cycle."""

    id: str = Field(..., description="Panel instance uuid.")
    name: str = Field("", description="Friendly display name.")
    category: int = Field(0, description="Panel nest id; selects the threshold profile.")
    limits: ResourceLimits = Field(default_factory=ResourceLimits, description="Configured resource limits.")


class ResourceSnapshot(BaseModel):
    """Instantaneous usage of one instance."""

    cpu_percent: float = Field(0.0, ge=0, description="Absolute CPU usage in percent.")
    memory_bytes: int = Field(0, ge=0, description="Resident memory in bytes.")
    disk_bytes: int = Field(0, ge=0, description="Disk usage in bytes.")

    @property
    def memory_gb(self) -> float:
        return self.memory_bytes / BYTES_PER_GB

    @property
    def disk_gb(self) -> float:
        return self.disk_bytes / BYTES_PER_GB


# PUBLIC_INTERFACE
def is_over_limit(limits: ResourceLimits, snapshot: ResourceSnapshot) -> bool:
    """
    Return True when any configured (non-zero) limit is met or exceeded.

    Memory and disk are compared in GB (usage arrives in bytes, limits in MB).
    """
    if limits.cpu > 0 and snapshot.cpu_percent >= limits.cpu:
        return True
    if limits.memory > 0 and snapshot.memory_gb >= limits.memory_gb:
        return True
    if limits.disk > 0 and snapshot.disk_gb >= limits.disk_gb:
        return True
    return False
