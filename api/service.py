"""
Settlement Service
==================

Service layer between the API routes and the settlement engine.

Holds the current record set of each settled month in memory; durability
is the caller's concern. Edits are serialized by a lock so the deposit
ledger always sees a consistent snapshot.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from src.energy_allocation.engine.banking import aggregate_banked_balances
from src.energy_allocation.engine.matching import SettlementResult, settle_month
from src.energy_allocation.engine.reconciliation import (
    DepositLedger,
    ReconciliationEngine,
    ReconciliationResult,
)
from src.energy_allocation.models.allocation import (
    AdjustmentType,
    AllocationRecord,
    find_allocation,
)
from src.energy_allocation.models.period import ALL_PERIODS, total
from src.energy_allocation.validators.allocation_validator import (
    AllocationValidator,
    ConsumerPriorityConfig,
    normalize_minimum_allocation,
)
from src.energy_allocation.validators.errors import ValidationError
from src.monitoring.logging_config import AuditLogger, LogContext

from .config import Settings, get_settings
from .schemas import AllocationEditRequest, SettlementRunRequest

logger = logging.getLogger(__name__)


class AllocationNotFoundError(LookupError):
    """No stored allocation (or month) matches the request"""


@dataclass
class EditOutcome:
    """Accepted allocation edit"""
    record: AllocationRecord
    previous_version: int
    zero_allocation: bool
    reconciliation: ReconciliationResult


class SettlementService:
    """
    Settlement service

    Example:
        >>> service = SettlementService()
        >>> result = service.run_settlement(request)
        >>> outcome = service.edit_allocation(edit_request)
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._results: Dict[str, SettlementResult] = {}
        self._lock = threading.Lock()
        self._start_time = time.time()
        self.ledger = DepositLedger()
        self.reconciler = ReconciliationEngine(self.ledger)
        self.validator = AllocationValidator()
        self.audit = AuditLogger()

    def get_uptime(self) -> float:
        return time.time() - self._start_time

    def settled_months(self) -> List[str]:
        return sorted(self._results)

    # ==========================================================
    # Settlement runs
    # ==========================================================

    def _company(self, company_id: Optional[str], request: SettlementRunRequest) -> Optional[str]:
        return company_id or request.company_id or self.settings.DEFAULT_COMPANY_ID

    def _unit_dicts(self, units, request: SettlementRunRequest) -> List[Dict[str, Any]]:
        rows = []
        for unit in units:
            row = unit.model_dump(by_alias=True)
            row['companyId'] = self._company(row.get('companyId'), request)
            if 'month' in row:
                row['month'] = row['month'] or request.month
            rows.append(row)
        return rows

    def run_settlement(self, request: SettlementRunRequest) -> SettlementResult:
        """Settle one month and store the result as the month's record set

        Raises:
            InvalidInputError: Malformed input; nothing is stored
        """
        with LogContext.scope(month=request.month):
            banked = self._unit_dicts(request.banked, request)
            if request.banking_records:
                banked += aggregate_banked_balances(
                    request.banking_records,
                    request.month,
                    self.settings.FINANCIAL_YEAR_START_MONTH,
                )

            priority = None
            if request.priority is not None:
                priority = ConsumerPriorityConfig.from_dict(request.priority.model_dump(by_alias=True))

            result = settle_month(
                request.month,
                self._unit_dicts(request.production, request),
                self._unit_dicts(request.consumption, request),
                banked=banked,
                shareholdings=[s.model_dump(by_alias=True) for s in request.shareholdings],
                priority_config=priority,
                overrides=[o.model_dump(by_alias=True) for o in request.overrides],
                shareholder_company_id=request.shareholder_company_id,
                strict_shareholding=self.settings.STRICT_SHAREHOLDING,
            )

            with self._lock:
                self._results[request.month] = result

            self.audit.log_action(
                'settlement_run',
                resource=request.month,
                details=result.summary.to_dict(),
            )
            return result

    def get_result(self, month: str) -> SettlementResult:
        result = self._results.get(month)
        if result is None:
            raise AllocationNotFoundError(f"No settlement stored for {month}")
        return result

    # ==========================================================
    # Allocation edits
    # ==========================================================

    def edit_allocation(self, request: AllocationEditRequest) -> EditOutcome:
        """Validate, version and reconcile one allocation edit

        Periods missing from ``request.allocated`` keep their current value.
        The stored record set is only changed when the edit is accepted.

        Raises:
            AllocationNotFoundError: Unknown month or allocation
            ChargeConflictError: Another allocation of the site and month is charged
            InvalidInputError: Negative value, or charge on a zero allocation
        """
        resource = f"{request.production_site_id}->{request.consumption_site_id}@{request.month}"

        with self._lock, LogContext.scope(month=request.month, allocation=resource):
            result = self.get_result(request.month)
            previous = find_allocation(
                result.allocations,
                request.production_site_id,
                request.consumption_site_id,
                request.month,
            )
            if previous is None:
                raise AllocationNotFoundError(f"No allocation {resource}")

            values = {p.key: previous.allocated[p] for p in ALL_PERIODS}
            values.update(request.allocated)

            try:
                quantities, zero = normalize_minimum_allocation(values)
                charge = request.charge
                # A zeroed record drops its charge unless the caller asks for it
                if zero and charge is None:
                    charge = False
                edited = previous.superseded_by(quantities, charge=charge)
                self.validator.validate_and_raise(edited, result.allocations)
            except ValidationError as e:
                self.audit.log_allocation_edit(resource, accepted=False, reason=e.message, user=request.user)
                raise

            deltas = {p: edited.allocated[p] - previous.allocated[p] for p in ALL_PERIODS}
            edited.adjustments = deltas
            change = total(deltas)
            if change > 0:
                edited.adjustment_type = AdjustmentType.INJECTION
            elif change < 0:
                edited.adjustment_type = AdjustmentType.REDUCTION
            else:
                edited.adjustment_type = AdjustmentType.NORMAL

            reconciliation = self.reconciler.reconcile(previous, edited)

            index = result.allocations.index(previous)
            result.allocations[index] = edited

            self.audit.log_allocation_edit(resource, accepted=True, version=edited.version, user=request.user)
            logger.info(
                f"Allocation {resource} edited: v{previous.version} -> v{edited.version}, "
                f"{len(reconciliation.adjustments)} reconciliation adjustments"
            )
            return EditOutcome(
                record=edited,
                previous_version=previous.version,
                zero_allocation=zero,
                reconciliation=reconciliation,
            )


# ============================================================
# Singleton
# ============================================================

_service: Optional[SettlementService] = None


def get_settlement_service() -> SettlementService:
    """Settlement service singleton"""
    global _service
    if _service is None:
        _service = SettlementService()
    return _service


def reset_settlement_service() -> SettlementService:
    """Replace the singleton with an empty service"""
    global _service
    _service = SettlementService()
    return _service
