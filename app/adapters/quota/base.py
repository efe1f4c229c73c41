"""Department storage data source interface.

The quota guard only needs two reads (allocation and live usage) plus the
administrative allocation write and usage report. Usage is always derived
from file records, never kept as a separately incremented counter.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class DepartmentRecord:
    """Department row as seen by the quota guard.

    Attributes:
        department_id: Department identifier.
        name: Display name.
        allocated_storage: Ceiling in bytes; None or 0 means no quota granted.
    """

    department_id: str
    name: str
    allocated_storage: int | None


@dataclass(frozen=True)
class DepartmentUsage:
    department_id: str
    name: str
    allocated_storage: int
    used_storage: int
    file_count: int


class AbstractDepartmentStorageSource(ABC):
    """Read/write access to department allocations and file sizes."""

    @abstractmethod
    def find_department(self, department_id: str) -> DepartmentRecord | None:
        """Return the department, or None if it does not exist.

        Raises:
            StorageSourceUnavailable: If the data source cannot be read.
        """
        raise NotImplementedError

    @abstractmethod
    def sum_active_file_sizes(self, department_id: str) -> int:
        """Return the live sum of sizes of the department's non-deleted files.

        Raises:
            StorageSourceUnavailable: If the data source cannot be read.
        """
        raise NotImplementedError

    @abstractmethod
    def update_allocation(self, department_id: str, allocated_storage: int) -> DepartmentRecord | None:
        """Overwrite the department allocation; None if it does not exist."""
        raise NotImplementedError

    @abstractmethod
    def usage_by_department(self) -> list[DepartmentUsage]:
        """Return allocation and live usage for every department."""
        raise NotImplementedError
