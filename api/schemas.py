"""
API Schemas
===========

Pydantic request/response models for the settlement service.

Inputs use the camelCase field names of persisted records
(``productionSiteId``, ``c1`` .. ``c5``); snake_case names are accepted too.
Quantities are validated by the settlement engine, not here, so a bad value
is reported with the engine's error list.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.energy_allocation.models.keys import parse_month_key


def _check_month(v: str) -> str:
    parse_month_key(v)
    return v


class PeriodValues(BaseModel):
    """Quantity per settlement period"""
    model_config = ConfigDict(populate_by_name=True)

    c1: Optional[float] = Field(0, description="P1 (non-peak)")
    c2: Optional[float] = Field(0, description="P2 (peak)")
    c3: Optional[float] = Field(0, description="P3 (peak)")
    c4: Optional[float] = Field(0, description="P4 (non-peak)")
    c5: Optional[float] = Field(0, description="P5 (non-peak)")


# ============================================================
# Settlement Inputs
# ============================================================

class ProductionUnitIn(PeriodValues):
    """Monthly production of one site"""
    production_site_id: str = Field(..., alias="productionSiteId")
    company_id: Optional[str] = Field(None, alias="companyId")
    site_name: str = Field("", alias="siteName")
    type: str = Field("SOLAR", description="SOLAR or WIND")
    banking_enabled: bool = Field(False, alias="bankingEnabled")
    month: Optional[str] = Field(None, description="MMYYYY; defaults to the run month")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "productionSiteId": "11",
                "companyId": "1",
                "siteName": "Solar Park A",
                "type": "SOLAR",
                "bankingEnabled": False,
                "c1": 100, "c2": 50, "c3": 50, "c4": 100, "c5": 100,
            }
        },
    )


class ConsumptionUnitIn(PeriodValues):
    """Monthly demand of one site"""
    consumption_site_id: str = Field(..., alias="consumptionSiteId")
    company_id: Optional[str] = Field(None, alias="companyId")
    site_name: str = Field("", alias="siteName")
    month: Optional[str] = Field(None, description="MMYYYY; defaults to the run month")


class BankedBalanceIn(PeriodValues):
    """Banked balance available for draw"""
    production_site_id: str = Field(..., alias="productionSiteId")
    company_id: Optional[str] = Field(None, alias="companyId")
    site_name: str = Field("", alias="siteName")


class ShareholdingIn(BaseModel):
    """Captive shareholding percentage"""
    model_config = ConfigDict(populate_by_name=True)

    generator_company_id: str = Field(..., alias="generatorCompanyId")
    shareholder_company_id: str = Field(..., alias="shareholderCompanyId")
    allocation_percentage: float = Field(100, alias="allocationPercentage")


class PriorityConfigIn(BaseModel):
    """Consumer priority and membership"""
    model_config = ConfigDict(populate_by_name=True)

    priorities: Dict[str, int] = Field(default_factory=dict, description="site ID -> priority (1 first)")
    included: List[str] = Field(default_factory=list)
    excluded: List[str] = Field(default_factory=list)
    exclude_by_default: bool = Field(False, alias="excludeByDefault")


class OverrideIn(BaseModel):
    """Manual per-period pin"""
    model_config = ConfigDict(populate_by_name=True)

    production_site_id: str = Field(..., alias="productionSiteId")
    consumption_site_id: str = Field(..., alias="consumptionSiteId")
    period: str = Field(..., description="P1..P5 or c1..c5")
    quantity: float = Field(..., description="Pinned units")


class SettlementRunRequest(BaseModel):
    """Settlement run request"""
    model_config = ConfigDict(populate_by_name=True)

    month: str = Field(..., description="Month key (MMYYYY)")
    company_id: Optional[str] = Field(None, alias="companyId")
    production: List[ProductionUnitIn] = Field(default_factory=list)
    consumption: List[ConsumptionUnitIn] = Field(default_factory=list)
    banked: List[BankedBalanceIn] = Field(default_factory=list)
    banking_records: List[Dict[str, Any]] = Field(
        default_factory=list,
        alias="bankingRecords",
        description="Prior banking records, aggregated over the financial year",
    )
    shareholdings: List[ShareholdingIn] = Field(default_factory=list)
    shareholder_company_id: Optional[str] = Field(None, alias="shareholderCompanyId")
    priority: Optional[PriorityConfigIn] = None
    overrides: List[OverrideIn] = Field(default_factory=list)

    @field_validator('month')
    @classmethod
    def validate_month(cls, v: str) -> str:
        return _check_month(v)


class AllocationEditRequest(BaseModel):
    """Edit one stored allocation"""
    model_config = ConfigDict(populate_by_name=True)

    month: str = Field(..., description="Month key (MMYYYY)")
    production_site_id: str = Field(..., alias="productionSiteId")
    consumption_site_id: str = Field(..., alias="consumptionSiteId")
    allocated: Dict[str, Any] = Field(..., description="New period values (c1..c5 or P1..P5)")
    charge: Optional[bool] = Field(None, description="New charge flag; unchanged when omitted")
    user: Optional[str] = Field(None, description="Editing user, for the audit log")

    @field_validator('month')
    @classmethod
    def validate_month(cls, v: str) -> str:
        return _check_month(v)


# ============================================================
# Responses
# ============================================================

class SettlementRunResponse(BaseModel):
    """Settlement run result"""
    success: bool = Field(True)
    month: str
    allocations: List[Dict[str, Any]]
    banking: List[Dict[str, Any]]
    lapses: List[Dict[str, Any]]
    banking_usage: List[Dict[str, Any]]
    residue: Dict[str, Any]
    skipped: List[str]
    summary: Dict[str, Any]
    processing_time_ms: float = Field(..., description="Processing time (ms)")


class SettlementRecordsResponse(BaseModel):
    """Stored record set of a month"""
    success: bool = Field(True)
    month: str
    allocations: List[Dict[str, Any]]
    banking: List[Dict[str, Any]]
    lapses: List[Dict[str, Any]]
    banking_usage: List[Dict[str, Any]]
    summary: Dict[str, Any]


class AllocationEditResponse(BaseModel):
    """Result of an accepted allocation edit"""
    success: bool = Field(True)
    record: Dict[str, Any]
    previous_version: int
    zero_allocation: bool = Field(..., description="Edit normalized to an all-zero record")
    reconciliation: Dict[str, Any]


class HealthResponse(BaseModel):
    """Health check response"""
    status: str = Field(..., description="Service status")
    version: str = Field(..., description="API version")
    settled_months: int = Field(..., description="Months with a stored record set")
    uptime_seconds: float = Field(..., description="Uptime (seconds)")


class ErrorResponse(BaseModel):
    """Error response"""
    success: bool = Field(default=False)
    error_code: str = Field(..., description="Error code")
    error_message: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Detail")
    errors: List[Dict[str, Any]] = Field(default_factory=list, description="Per-field errors")
