"""
Import service.

Preview and commit of spreadsheet rows as shipments:

    rows → batches of import_batch_size → rows processed in order
         → RowOutcome per row → ImportSummary tallied from outcomes

Per-row order on commit: normalize → location (hard fail) → agency and
service type → required fields (hard fail) → duplicate gate (skip) →
payload → atomic create.

A failing row never aborts the run. Every commit is kept as an ImportRun
so its failed or skipped rows can be retried later.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional
import structlog

from config import settings
from exceptions import (
    ImportRunNotFoundError,
    InvalidImportInputError,
    MissingSenderError,
    TooManyRowsError,
)
from models.import_mapping import ColumnMapping, NormalizedRow, RawRow, TargetField
from models.import_result import (
    DELIVERY_TYPE_KEY,
    SENDER_ORG_KEY,
    CommitRequest,
    CommitResponse,
    EntityResolutions,
    PreviewRequest,
    PreviewResponse,
    PreviewRow,
    PreviewSummary,
    RowOutcome,
    RowStatus,
    RowWarning,
)
from models.lookup import LookupIndex
from models.resolution import InferenceResult, ResolvedLocation, ResolvedReferences
from services.dedup_service import DedupGate
from services.entity_resolver import resolve_references
from services.import_run_store import ImportRun, retrieve_run, store_run
from services.location_inference import infer_location
from services.location_resolver import LocationResolver
from services.lookup_service import get_lookup_service
from services.row_normalizer import normalize_row
from services.shipment_create_service import build_shipment_payload, get_shipment_create_service
from utils.deadline import CancellationToken, run_with_deadline

logger = structlog.get_logger(__name__)

LookupLoader = Callable[[], LookupIndex]
ShipmentCreator = Callable[[dict[str, Any], list[dict[str, Any]]], dict[str, str]]

# Error keys outside the canonical fields
ERROR_DB = "_db"
ERROR_GENERAL = "_general"
ERROR_CANCELLED = "_cancelled"


@dataclass
class _ResolvedRow:
    """Intermediate state of one row while it is being processed."""
    row: NormalizedRow
    location: ResolvedLocation
    references: Optional[ResolvedReferences] = None
    warnings: list[RowWarning] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)


def _validate_rows_and_mapping(rows: list[RawRow], mappings: list[ColumnMapping]) -> None:
    """
    Reject a request before any row is processed.

    Raises:
        InvalidImportInputError: No rows, no mapping, or a header mapped twice
        TooManyRowsError: More rows than import_max_rows
    """
    if not rows:
        raise InvalidImportInputError("No rows to import")
    if not mappings:
        raise InvalidImportInputError("No column mapping provided")
    if len(rows) > settings.import_max_rows:
        raise TooManyRowsError(len(rows), settings.import_max_rows)

    seen: set[str] = set()
    duplicated: list[str] = []
    for mapping in mappings:
        if mapping.source_header in seen:
            duplicated.append(mapping.source_header)
        seen.add(mapping.source_header)
    if duplicated:
        raise InvalidImportInputError(
            "Each source header can only be mapped once",
            details={"duplicated_headers": duplicated}
        )


def _freight_warning(raw: RawRow, row: NormalizedRow, mappings: list[ColumnMapping]) -> Optional[RowWarning]:
    """Warn when a freight cell has text that is neither paid nor unpaid."""
    if row.is_freight_paid is not None:
        return None
    for mapping in mappings:
        if mapping.target_field == TargetField.IS_FREIGHT_PAID:
            value = raw.get(mapping.source_header)
            if value is not None and str(value).strip():
                return RowWarning(field="is_freight_paid", message="Unrecognized freight value")
    return None


class ImportService:
    """
    Row resolution and batch commit engine.

    Collaborators are injectable; by default the Supabase-backed services
    are used. Every collaborator call runs under collaborator_timeout_seconds.
    """

    def __init__(
        self,
        lookup_loader: Optional[LookupLoader] = None,
        dedup_gate: Optional[DedupGate] = None,
        creator: Optional[ShipmentCreator] = None,
        infer: Optional[Callable[[str, LookupIndex], InferenceResult]] = None,
        timeout_seconds: Optional[float] = None,
        batch_size: Optional[int] = None,
    ):
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None
            else settings.collaborator_timeout_seconds
        )
        self.batch_size = batch_size or settings.import_batch_size
        self._lookup_loader = lookup_loader
        self._creator = creator
        self._infer = infer or infer_location
        self.dedup_gate = dedup_gate or DedupGate(timeout_seconds=self.timeout_seconds)
        self.location_resolver = LocationResolver(infer=self._infer_with_deadline)

    # ===================
    # COLLABORATORS
    # ===================

    def _load_lookup(self) -> LookupIndex:
        if self._lookup_loader is None:
            self._lookup_loader = get_lookup_service().load_index
        return self._lookup_loader()

    @property
    def creator(self) -> ShipmentCreator:
        if self._creator is None:
            self._creator = get_shipment_create_service().create_shipment
        return self._creator

    def _infer_with_deadline(self, address: str, lookup: LookupIndex) -> InferenceResult:
        return run_with_deadline(
            "location_inference", self._infer, self.timeout_seconds, address, lookup
        )

    # ===================
    # PREVIEW
    # ===================

    def preview(self, request: PreviewRequest) -> PreviewResponse:
        """
        Dry run: resolve every row and report errors and warnings.

        Never writes. Duplicate hits are warnings, and only checked when
        defaults_chosen carries a sender.

        Args:
            request: Rows, mappings and defaults

        Returns:
            PreviewResponse with one PreviewRow per input row

        Raises:
            InvalidImportInputError: No rows, no mapping or repeated header
            TooManyRowsError: More rows than import_max_rows
        """
        _validate_rows_and_mapping(request.rows, request.mappings)

        lookup = self._load_lookup()
        defaults = request.defaults_chosen
        sender_org_id = defaults.get(SENDER_ORG_KEY) or None

        logger.info("import_preview_started", rows=len(request.rows), has_sender=bool(sender_org_id))

        preview_rows: list[PreviewRow] = []
        for row_index, raw in enumerate(request.rows, start=1):
            resolved = self._resolve_row(raw, request.mappings, defaults, lookup, None)

            if not resolved.row.recipient_name:
                resolved.errors[TargetField.RECIPIENT_NAME.value] = "Recipient name is required"

            if sender_org_id:
                duplicate = self.dedup_gate.check(
                    sender_org_id,
                    resolved.row,
                    resolved.references.service_type_id,
                    resolved.references.agency_id,
                    resolved.location.delivery_type,
                )
                if duplicate.is_duplicate:
                    resolved.warnings.append(RowWarning(
                        field=ERROR_GENERAL,
                        message=f"Possible duplicate: {duplicate.reason or 'recent shipment'}"
                    ))

            preview_rows.append(PreviewRow(
                row_index=row_index,
                normalized=self._preview_normalized(resolved, lookup, defaults),
                errors=resolved.errors,
                warnings=resolved.warnings,
            ))

        summary = PreviewSummary.from_rows(preview_rows)

        logger.info(
            "import_preview_completed",
            total=summary.total,
            ok=summary.ok,
            with_warnings=summary.with_warnings,
            with_errors=summary.with_errors
        )

        return PreviewResponse(preview_rows=preview_rows, summary=summary)

    def _preview_normalized(
        self,
        resolved: _ResolvedRow,
        lookup: LookupIndex,
        defaults: dict[str, str],
    ) -> dict[str, Any]:
        """Shipment-like view of a resolved row for review."""
        row = resolved.row
        location = resolved.location
        data = row.to_dict()
        data.update({
            "department_id": location.department_id,
            "department_name": lookup.department_name(location.department_id) or row.department_name,
            "locality_id": location.locality_id,
            "locality_name": lookup.locality_name(location.locality_id),
            "locality_manual": location.locality_manual,
            "delivery_type": location.delivery_type.value,
            "is_freight_paid": row.is_freight_paid is True,
            "service_type": row.service_type or defaults.get("service_type") or None,
            "package_size": row.package_size or defaults.get("package_size") or settings.default_package_size,
            "agency_id": resolved.references.agency_id if resolved.references else None,
            "service_type_id": resolved.references.service_type_id if resolved.references else None,
        })
        return data

    # ===================
    # COMMIT
    # ===================

    def commit(
        self,
        request: CommitRequest,
        cancel_token: Optional[CancellationToken] = None,
    ) -> CommitResponse:
        """
        Create shipments for every valid, non-duplicate row.

        Args:
            request: Rows, final mapping, defaults, manual resolutions and
                     dedup flags
            cancel_token: Checked between rows; once cancelled the rest of
                          the rows are reported as FAILED

        Returns:
            CommitResponse with one RowOutcome per row and the run id

        Raises:
            InvalidImportInputError: No rows, no mapping or repeated header
            TooManyRowsError: More rows than import_max_rows
            MissingSenderError: defaults_chosen has no remitente_org_id
        """
        self._validate_commit(request)
        run = ImportRun(request=request, row_indices=list(range(1, len(request.rows) + 1)))
        return self._execute(run, cancel_token)

    def retry_failed(
        self,
        run_id: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> CommitResponse:
        """
        Re-submit the rows of a run whose outcome has no shipment id.

        Uses the parent run's force flag. Returns a new run; the parent is
        left untouched.
        """
        parent = self._get_stored_run(run_id)
        outcomes = [o for o in parent.results if o.shipment_id is None]
        return self._retry(parent, outcomes, force=parent.request.force, cancel_token=cancel_token)

    def retry_duplicates(
        self,
        run_id: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> CommitResponse:
        """Re-submit the SKIPPED_DUPLICATE rows of a run with force=True."""
        parent = self._get_stored_run(run_id)
        outcomes = [o for o in parent.results if o.status == RowStatus.SKIPPED_DUPLICATE]
        return self._retry(parent, outcomes, force=True, cancel_token=cancel_token)

    def get_run(self, run_id: str) -> CommitResponse:
        """Stored result of a previous commit or retry."""
        return self._to_response(self._get_stored_run(run_id))

    def _retry(
        self,
        parent: ImportRun,
        outcomes: list[RowOutcome],
        force: bool,
        cancel_token: Optional[CancellationToken],
    ) -> CommitResponse:
        row_indices, rows = parent.rows_for(outcomes)
        if not rows:
            raise InvalidImportInputError(
                "No rows to retry",
                details={"run_id": parent.run_id}
            )

        request = parent.request.model_copy(update={"rows": rows, "force": force})
        run = ImportRun(request=request, row_indices=row_indices, parent_run_id=parent.run_id)

        logger.info(
            "import_retry_started",
            parent_run_id=parent.run_id,
            run_id=run.run_id,
            rows=len(rows),
            force=force
        )

        return self._execute(run, cancel_token)

    def _validate_commit(self, request: CommitRequest) -> None:
        _validate_rows_and_mapping(request.rows, request.mapping_final)
        if not request.defaults_chosen.get(SENDER_ORG_KEY):
            raise MissingSenderError()

    def _get_stored_run(self, run_id: str) -> ImportRun:
        run = retrieve_run(run_id)
        if run is None:
            raise ImportRunNotFoundError(run_id)
        return run

    def _execute(
        self,
        run: ImportRun,
        cancel_token: Optional[CancellationToken],
    ) -> CommitResponse:
        """Process a run batch by batch, store it, and return its response."""
        request = run.request
        sender_org_id = request.defaults_chosen[SENDER_ORG_KEY]

        logger.info(
            "import_commit_started",
            run_id=run.run_id,
            parent_run_id=run.parent_run_id,
            rows=len(request.rows),
            dedupe_check=request.dedupe_check,
            force=request.force
        )

        lookup = self._load_lookup()

        pairs = list(zip(run.row_indices, request.rows))
        for start in range(0, len(pairs), self.batch_size):
            batch = pairs[start:start + self.batch_size]
            logger.debug("import_batch_started", run_id=run.run_id, start=start, size=len(batch))

            for row_index, raw in batch:
                if cancel_token is not None and cancel_token.cancelled:
                    run.cancelled = True
                    run.results.append(RowOutcome(
                        row_index=row_index,
                        status=RowStatus.FAILED,
                        errors={ERROR_CANCELLED: "Import cancelled before this row was processed"},
                    ))
                    continue

                try:
                    outcome = self._commit_row(row_index, raw, request, lookup, sender_org_id)
                except Exception as e:
                    logger.error(
                        "row_failed",
                        run_id=run.run_id,
                        row_index=row_index,
                        error=str(e),
                        error_type=type(e).__name__
                    )
                    outcome = RowOutcome(
                        row_index=row_index,
                        status=RowStatus.FAILED,
                        errors={ERROR_GENERAL: "Unexpected error while processing the row"},
                    )
                run.results.append(outcome)

        store_run(run)

        summary = run.summary
        logger.info(
            "import_commit_completed",
            run_id=run.run_id,
            total=summary.total,
            inserted=summary.inserted,
            failed=summary.failed,
            skipped=summary.skipped,
            cancelled=run.cancelled
        )

        return self._to_response(run)

    def _commit_row(
        self,
        row_index: int,
        raw: RawRow,
        request: CommitRequest,
        lookup: LookupIndex,
        sender_org_id: str,
    ) -> RowOutcome:
        """Process one row to a RowOutcome. Raises only on unexpected bugs."""
        defaults = request.defaults_chosen
        row = normalize_row(raw, request.mapping_final, defaults)

        location = self.location_resolver.resolve(row, lookup, defaults.get(DELIVERY_TYPE_KEY))
        warnings = list(location.warnings)

        freight = _freight_warning(raw, row, request.mapping_final)
        if freight is not None:
            warnings.append(freight)

        if location.errors:
            return RowOutcome(
                row_index=row_index,
                status=RowStatus.FAILED,
                warnings=warnings,
                errors=dict(location.errors),
            )

        references = resolve_references(row, lookup, defaults, request.entity_resolutions)
        warnings.extend(references.warnings)

        errors: dict[str, str] = {}
        if not row.recipient_name:
            errors[TargetField.RECIPIENT_NAME.value] = "Recipient name is required"
        if errors:
            return RowOutcome(
                row_index=row_index,
                status=RowStatus.FAILED,
                warnings=warnings,
                errors=errors,
            )

        duplicate = self.dedup_gate.check(
            sender_org_id,
            row,
            references.service_type_id,
            references.agency_id,
            location.delivery_type,
            dedupe_check=request.dedupe_check,
            force=request.force,
        )
        if duplicate.is_duplicate:
            return RowOutcome(
                row_index=row_index,
                status=RowStatus.SKIPPED_DUPLICATE,
                shipment_id=duplicate.shipment_id,
                reason=duplicate.reason,
                warnings=warnings,
            )

        shipment_data, packages = build_shipment_payload(
            sender_org_id, row, location, references, lookup, defaults
        )

        try:
            created = run_with_deadline(
                "shipment_create", self.creator, self.timeout_seconds, shipment_data, packages
            )
        except Exception as e:
            logger.error(
                "shipment_create_failed",
                row_index=row_index,
                error=str(e),
                error_type=type(e).__name__
            )
            return RowOutcome(
                row_index=row_index,
                status=RowStatus.FAILED,
                warnings=warnings,
                errors={ERROR_DB: f"Error creating shipment: {e}"},
            )

        return RowOutcome(
            row_index=row_index,
            status=RowStatus.INSERTED,
            shipment_id=created["id"],
            tracking_code=created.get("tracking_code"),
            warnings=warnings,
        )

    # ===================
    # SHARED
    # ===================

    def _resolve_row(
        self,
        raw: RawRow,
        mappings: list[ColumnMapping],
        defaults: dict[str, str],
        lookup: LookupIndex,
        resolutions: Optional[EntityResolutions],
    ) -> _ResolvedRow:
        """Normalize and resolve a row without stopping at the first error."""
        row = normalize_row(raw, mappings, defaults)
        location = self.location_resolver.resolve(row, lookup, defaults.get(DELIVERY_TYPE_KEY))
        references = resolve_references(row, lookup, defaults, resolutions)

        resolved = _ResolvedRow(
            row=row,
            location=location,
            references=references,
            warnings=list(location.warnings),
            errors=dict(location.errors),
        )

        freight = _freight_warning(raw, row, mappings)
        if freight is not None:
            resolved.warnings.append(freight)
        resolved.warnings.extend(references.warnings)

        return resolved

    def _to_response(self, run: ImportRun) -> CommitResponse:
        return CommitResponse(
            run_id=run.run_id,
            parent_run_id=run.parent_run_id,
            created_at=run.created_at,
            cancelled=run.cancelled,
            summary=run.summary,
            results=run.results,
        )


# Singleton instance
_import_service: Optional[ImportService] = None


def get_import_service() -> ImportService:
    """Get or create ImportService instance."""
    global _import_service
    if _import_service is None:
        _import_service = ImportService()
    return _import_service
