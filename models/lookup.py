"""
Reference catalogs used to resolve import rows.

LookupIndex is built once per import run from the departments,
localities, agencies and service types tables and is treated as a
read-only snapshot for the rest of the run.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from pydantic import Field

from models.base import ImportSchema


@dataclass(frozen=True)
class Department:
    id: int
    name: str


@dataclass(frozen=True)
class Locality:
    id: int
    name: str
    department_id: int


@dataclass(frozen=True)
class Agency:
    id: str
    name: str


@dataclass(frozen=True)
class ServiceType:
    id: str
    code: str


@dataclass(frozen=True, eq=False)
class LookupIndex:
    """
    Immutable lookup snapshot for one import run.

    Name keys are uppercased (case-insensitive, accent-sensitive).
    Localities are grouped by name as lists because the same name can
    exist in several departments ("Centro").

    Build with LookupIndex.build(); do not construct directly.
    """
    departments: tuple[Department, ...]
    localities: tuple[Locality, ...]
    agencies: tuple[Agency, ...]
    service_types: tuple[ServiceType, ...]
    departments_by_name: Mapping[str, Department]
    departments_by_id: Mapping[int, Department]
    localities_by_name: Mapping[str, tuple[Locality, ...]]
    localities_by_id: Mapping[int, Locality]
    localities_by_department: Mapping[int, tuple[Locality, ...]]
    agencies_by_name: Mapping[str, Agency]
    service_types_by_code: Mapping[str, ServiceType]

    @classmethod
    def build(
        cls,
        departments: Iterable[Department] = (),
        localities: Iterable[Locality] = (),
        agencies: Iterable[Agency] = (),
        service_types: Iterable[ServiceType] = (),
    ) -> "LookupIndex":
        """
        Build all indices from catalog rows.

        Catalog order is preserved; partial matching relies on it.
        """
        departments = tuple(departments)
        localities = tuple(localities)
        agencies = tuple(agencies)
        service_types = tuple(service_types)

        departments_by_name: dict[str, Department] = {}
        for dept in departments:
            departments_by_name.setdefault(dept.name.upper(), dept)

        by_name: dict[str, list[Locality]] = {}
        by_department: dict[int, list[Locality]] = {}
        for loc in localities:
            by_name.setdefault(loc.name.upper(), []).append(loc)
            by_department.setdefault(loc.department_id, []).append(loc)

        agencies_by_name: dict[str, Agency] = {}
        for agency in agencies:
            agencies_by_name.setdefault(agency.name.upper(), agency)

        return cls(
            departments=departments,
            localities=localities,
            agencies=agencies,
            service_types=service_types,
            departments_by_name=MappingProxyType(departments_by_name),
            departments_by_id=MappingProxyType({d.id: d for d in departments}),
            localities_by_name=MappingProxyType({k: tuple(v) for k, v in by_name.items()}),
            localities_by_id=MappingProxyType({l.id: l for l in localities}),
            localities_by_department=MappingProxyType({k: tuple(v) for k, v in by_department.items()}),
            agencies_by_name=MappingProxyType(agencies_by_name),
            service_types_by_code=MappingProxyType({s.code: s for s in service_types}),
        )

    def department_name(self, department_id: Optional[int]) -> Optional[str]:
        dept = self.departments_by_id.get(department_id) if department_id is not None else None
        return dept.name if dept else None

    def locality_name(self, locality_id: Optional[int]) -> Optional[str]:
        loc = self.localities_by_id.get(locality_id) if locality_id is not None else None
        return loc.name if loc else None


class OrganizationOption(ImportSchema):
    """Active organization offered as sender, courier or agency."""
    id: str
    name: str
    type: Optional[str] = None


class OrganizationList(ImportSchema):
    organizations: list[OrganizationOption] = Field(default_factory=list)
