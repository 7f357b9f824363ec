"""
Lookup service.

Loads the four reference catalogs an import run resolves against and
builds an immutable LookupIndex snapshot from them.
"""

from typing import Optional
import structlog

from config import get_supabase_client
from exceptions import DatabaseError
from models.lookup import Agency, Department, Locality, LookupIndex, OrganizationOption, ServiceType

logger = structlog.get_logger(__name__)

AGENCY_ORG_TYPE = "agencia"


class LookupService:
    """
    Reference catalog loader.

    Every call to load_index() reads fresh data; concurrent runs each get
    their own snapshot.
    """

    def __init__(self):
        self.db = get_supabase_client()

    def load_index(self) -> LookupIndex:
        """
        Read departments, localities, agencies and service types.

        Returns:
            LookupIndex snapshot

        Raises:
            DatabaseError: If any catalog query fails
        """
        try:
            departments = self.db.table("departamentos").select("id, name").execute()
            localities = (
                self.db.table("localidades")
                .select("id, name, departamento_id")
                .execute()
            )
            organizations = (
                self.db.table("organizations")
                .select("id, name, type")
                .eq("active", True)
                .execute()
            )
            service_types = (
                self.db.table("service_types")
                .select("id, code")
                .eq("active", True)
                .execute()
            )
        except Exception as e:
            logger.error("lookup_load_failed", error=str(e))
            raise DatabaseError("select", str(e))

        index = LookupIndex.build(
            departments=[
                Department(id=row["id"], name=row["name"])
                for row in departments.data or []
            ],
            localities=[
                Locality(id=row["id"], name=row["name"], department_id=row["departamento_id"])
                for row in localities.data or []
            ],
            agencies=[
                Agency(id=row["id"], name=row["name"])
                for row in organizations.data or []
                if row.get("type") == AGENCY_ORG_TYPE
            ],
            service_types=[
                ServiceType(id=row["id"], code=row["code"])
                for row in service_types.data or []
            ],
        )

        logger.info(
            "lookup_index_loaded",
            departments=len(index.departments),
            localities=len(index.localities),
            agencies=len(index.agencies),
            service_types=len(index.service_types)
        )

        return index

    def list_organizations(self) -> list[OrganizationOption]:
        """
        Active organizations ordered by name.

        The import wizard picks the sender, courier and default agency
        from this list.

        Raises:
            DatabaseError: If the query fails
        """
        try:
            result = (
                self.db.table("organizations")
                .select("id, name, type")
                .eq("active", True)
                .order("name")
                .execute()
            )
        except Exception as e:
            logger.error("organizations_load_failed", error=str(e))
            raise DatabaseError("select", str(e))

        return [OrganizationOption(**row) for row in result.data or []]


# Singleton instance
_lookup_service: Optional[LookupService] = None


def get_lookup_service() -> LookupService:
    """Get or create LookupService instance."""
    global _lookup_service
    if _lookup_service is None:
        _lookup_service = LookupService()
    return _lookup_service
