"""
Pydantic models for request/response validation.

Callback and verify payloads keep the gateway's exact field names via
aliases; Python code uses snake_case.
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, List, Optional

from domain.enums import IngestOutcome, RiskSpeed, StatusCode


class GatewayBase(BaseModel):
    """
    Shared base - allows construction by Python name or alias.

    Gateway ids may arrive as JSON numbers (e.g. a numeric PaymentId); string
    fields accept them as their decimal text.
    """
    model_config = ConfigDict(populate_by_name=True, from_attributes=True, coerce_numbers_to_str=True)


# ── Callback / Verify Models ────────────────────────────────────────

class AdditionalDataItem(GatewayBase):
    key: str
    value: Any = None


class InboundClaim(GatewayBase):
    """IPN body as delivered by the gateway. OrderStatus is parsed separately."""
    token: str = Field(..., alias="Token", min_length=1)
    payment_id: Optional[str] = Field(None, alias="PaymentId")
    order_id: str = Field(..., alias="OrderId", min_length=1)
    order_status: Any = Field(..., alias="OrderStatus")
    additional_data: List[AdditionalDataItem] = Field(default_factory=list, alias="AdditionalData")
    # Captured before parsing; the signature covers these exact bytes
    raw_body: bytes = Field(b"", exclude=True, repr=False)
    signature_header: str = Field("", exclude=True)


class VerifiedStatus(GatewayBase):
    """Authoritative status returned by POST /v1/payment/verify."""
    token: str
    order_id: str = Field(..., alias="orderId", min_length=1)
    order_status: StatusCode = Field(..., alias="orderStatus")
    additional_data: List[AdditionalDataItem] = Field(default_factory=list, alias="additionalData")

    @field_validator("order_status", mode="before")
    @classmethod
    def _parse_status(cls, v):
        # Unknown codes raise UnknownStatusCodeError, not a validation error
        return StatusCode.parse(v)


class IngestResult(GatewayBase):
    outcome: IngestOutcome
    order_id: str = Field(..., alias="orderId")
    status: StatusCode
    token: str


# ── Payment Request Models ──────────────────────────────────────────

class CreatePaymentRequest(GatewayBase):
    """Request to open a payment session at the gateway."""
    order_id: str = Field(..., alias="orderId", min_length=1, max_length=128)
    fiat_amount: float = Field(..., alias="fiatAmount", gt=0)
    fiat_currency: str = Field("USD", alias="fiatCurrency", min_length=3, max_length=10)
    return_url: str = Field(..., alias="returnUrl", min_length=1)
    risk_speed: RiskSpeed = Field(RiskSpeed.NORMAL, alias="riskSpeed")


class CreatePaymentResponse(GatewayBase):
    token: str
    payment_url: str = Field(..., alias="paymentUrl")

