"""
Duplicate detection for imported shipments.

DedupService owns the fingerprint rule: same sender, same service type,
and (when known) same recipient phone, address, agency and delivery type,
created within the last dedup_window_hours.

DedupGate owns the policy: when a check runs at all, and what happens when
the check itself fails.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
import structlog

from config import get_supabase_client, settings
from exceptions import DatabaseError
from models.import_mapping import DeliveryType, NormalizedRow
from models.resolution import DuplicateCheckResult
from utils.deadline import run_with_deadline

logger = structlog.get_logger(__name__)

DuplicateChecker = Callable[
    [str, NormalizedRow, Optional[str], Optional[str], Optional[DeliveryType]],
    DuplicateCheckResult
]


class DedupService:
    """Supabase-backed duplicate lookup over recent shipments."""

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "shipments"

    def check_duplicate(
        self,
        sender_org_id: str,
        row: NormalizedRow,
        service_type_id: Optional[str],
        agency_id: Optional[str] = None,
        delivery_type: Optional[DeliveryType] = None,
    ) -> DuplicateCheckResult:
        """
        Look for a recent shipment with the same fingerprint.

        Args:
            sender_org_id: Sender organization (remitente)
            row: Normalized row being imported
            service_type_id: Resolved service type, may be None
            agency_id: Resolved agency, may be None
            delivery_type: Resolved delivery type

        Returns:
            DuplicateCheckResult with the newest matching shipment id

        Raises:
            DatabaseError: If the query fails
        """
        since = datetime.now(timezone.utc) - timedelta(hours=settings.dedup_window_hours)

        try:
            query = (
                self.db.table(self.table)
                .select("id")
                .eq("remitente_org_id", sender_org_id)
                .gt("created_at", since.isoformat())
            )

            if service_type_id:
                query = query.eq("service_type_id", service_type_id)
            else:
                query = query.is_("service_type_id", "null")

            if row.recipient_phone:
                query = query.eq("recipient_phone", row.recipient_phone)
            if row.recipient_address:
                query = query.eq("recipient_address", row.recipient_address)
            if agency_id:
                query = query.eq("agencia_org_id", agency_id)
            if delivery_type:
                query = query.eq("delivery_type", delivery_type.value)

            result = query.order("created_at", desc=True).limit(1).execute()

        except Exception as e:
            logger.error("dedup_query_failed", sender_org_id=sender_org_id, error=str(e))
            raise DatabaseError("select", str(e))

        if result.data:
            return DuplicateCheckResult(
                is_duplicate=True,
                shipment_id=result.data[0]["id"],
                reason=f"Duplicate detected (last {settings.dedup_window_hours}h)"
            )

        return DuplicateCheckResult(is_duplicate=False)


class DedupGate:
    """
    Policy wrapper around a duplicate checker.

    The check runs only when dedupe_check is on and force is off. A
    failing or slow checker means "not a duplicate".
    """

    def __init__(
        self,
        checker: Optional[DuplicateChecker] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self._checker = checker
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None
            else settings.collaborator_timeout_seconds
        )

    @property
    def checker(self) -> DuplicateChecker:
        if self._checker is None:
            self._checker = get_dedup_service().check_duplicate
        return self._checker

    @staticmethod
    def is_enabled(dedupe_check: bool, force: bool) -> bool:
        return dedupe_check and not force

    def check(
        self,
        sender_org_id: Optional[str],
        row: NormalizedRow,
        service_type_id: Optional[str],
        agency_id: Optional[str],
        delivery_type: Optional[DeliveryType],
        dedupe_check: bool = True,
        force: bool = False,
    ) -> DuplicateCheckResult:
        """
        Run the duplicate check if policy allows it.

        Never raises: checker exceptions and timeouts are logged and
        reported as not-duplicate.
        """
        if not self.is_enabled(dedupe_check, force) or not sender_org_id:
            return DuplicateCheckResult(is_duplicate=False)

        try:
            return run_with_deadline(
                "dedup",
                self.checker,
                self.timeout_seconds,
                sender_org_id,
                row,
                service_type_id,
                agency_id,
                delivery_type,
            )
        except Exception as e:
            logger.warning(
                "dedup_check_failed",
                sender_org_id=sender_org_id,
                error=str(e),
                error_type=type(e).__name__
            )
            return DuplicateCheckResult(is_duplicate=False)


# Singleton instance
_dedup_service: Optional[DedupService] = None


def get_dedup_service() -> DedupService:
    """Get or create DedupService instance."""
    global _dedup_service
    if _dedup_service is None:
        _dedup_service = DedupService()
    return _dedup_service
