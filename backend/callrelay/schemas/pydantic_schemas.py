from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Dict, Any, Union


# ---------------------------------------------------------------------------
# Inbound Vapi payloads. Field names follow Vapi's camelCase wire format.
# Unknown fields are ignored so new provider attributes never break parsing.
# ---------------------------------------------------------------------------

class VapiCustomer(BaseModel):
    model_config = ConfigDict(extra="ignore")

    number: Optional[str] = None


class VapiCost(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Optional[str] = None
    cost: Optional[float] = None


class VapiStructuredData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    email: Optional[str] = None
    # Alternative fields produced by some analysisPlan configurations
    caller_name: Optional[str] = None
    caller_email: Optional[str] = None

    @field_validator("name", "email", "caller_name", "caller_email", mode="before")
    @classmethod
    def _strings_only(cls, value: Any) -> Optional[str]:
        # Shape comes from each tenant's analysisPlan; non-string values are ignored
        return value if isinstance(value, str) else None


class VapiAnalysis(BaseModel):
    model_config = ConfigDict(extra="ignore")

    summary: Optional[str] = None
    structuredData: Optional[VapiStructuredData] = None

    @field_validator("structuredData", mode="before")
    @classmethod
    def _object_only(cls, value: Any) -> Any:
        return value if isinstance(value, (dict, VapiStructuredData)) else None


class VapiCall(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    orgId: Optional[str] = None
    assistantId: Optional[str] = None
    status: Optional[str] = None
    endedReason: Optional[str] = None
    startedAt: Optional[Union[str, int, float]] = None  # ISO string or Unix ms
    endedAt: Optional[Union[str, int, float]] = None
    transcript: Optional[str] = None
    type: Optional[str] = None  # "inboundPhoneCall", "outboundPhoneCall", "webCall"
    customer: Optional[VapiCustomer] = None
    costs: Optional[List[VapiCost]] = None
    analysis: Optional[VapiAnalysis] = None

    @property
    def customer_number(self) -> Optional[str]:
        return self.customer.number if self.customer else None

    @property
    def summary(self) -> Optional[str]:
        return self.analysis.summary if self.analysis else None

    @property
    def structured_data(self) -> VapiStructuredData:
        if self.analysis and self.analysis.structuredData:
            return self.analysis.structuredData
        return VapiStructuredData()


class VapiConversationMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: str
    content: Optional[str] = None
    message: Optional[str] = None  # older payloads use "message" instead of "content"

    @property
    def text(self) -> str:
        return self.content or self.message or ""


class VapiMessage(BaseModel):
    """Canonical inner event once the delivery envelope has been unwrapped."""
    model_config = ConfigDict(extra="ignore")

    type: Optional[str] = None
    call: Optional[VapiCall] = None
    conversation: Optional[List[VapiConversationMessage]] = None


# ---------------------------------------------------------------------------
# Subscriber (outbound webhook) registration
# ---------------------------------------------------------------------------

class SubscriberBase(BaseModel):
    url: str
    secret: Optional[str] = None
    is_active: bool = True
    events: List[str] = Field(default_factory=lambda: ["call.started", "call.ended"])
    # Empty list means every agent
    agent_ids: List[str] = Field(default_factory=list)


class SubscriberCreate(SubscriberBase):
    pass


class SubscriberUpdate(BaseModel):
    url: Optional[str] = None
    secret: Optional[str] = None
    is_active: Optional[bool] = None
    events: Optional[List[str]] = None
    agent_ids: Optional[List[str]] = None


class SubscriberRead(SubscriberBase):
    id: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class DeliveryLogRead(BaseModel):
    id: str
    webhook_id: str
    event_type: str
    payload: Dict[str, Any]
    response_status: Optional[int] = None
    error_message: Optional[str] = None
    created_at: Optional[str] = None


# ---------------------------------------------------------------------------
# Active calls
# ---------------------------------------------------------------------------

class ActiveCallRead(BaseModel):
    vapi_call_id: str
    client_id: str
    status: Optional[str] = None
    started_at: Optional[str] = None
    last_active_at: Optional[str] = None
    customer_number: Optional[str] = None
    assistant_id: Optional[str] = None
    type: Optional[str] = None
    transcript: Optional[str] = None
    summary: Optional[str] = None


class ActiveCallListResponse(BaseModel):
    items: List[ActiveCallRead]
    total: int


class EndCallResult(BaseModel):
    success: bool
    error: Optional[str] = None
