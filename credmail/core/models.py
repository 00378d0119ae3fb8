from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


DEFAULT_PIN_SUBJECT = "Your SAFEQ PIN"
DEFAULT_PIN_BODY = (
    "Hello {{fullName || userName}},\n\n"
    "Your new SAFEQ PIN is {{pin}}.\n"
    "Use this code to access printers that require a numeric PIN.\n\n"
    "Thanks,\nSAFEQ Cloud Administrator"
)
DEFAULT_OTP_SUBJECT = "Your SAFEQ OTP"
DEFAULT_OTP_BODY = (
    "Hello {{fullName || userName}},\n\n"
    "Your one-time password is {{otp}}.\n"
    "Enter this code when the portal or device asks for an OTP.\n\n"
    "Thanks,\nSAFEQ Cloud Administrator"
)


class DeliveryMethod(str, Enum):
    DESKTOP = "desktop"
    GRAPH = "graph"


class CredentialKind(str, Enum):
    PIN = "pin"
    OTP = "otp"


class ContentType(str, Enum):
    TEXT = "text"
    HTML = "html"

    @property
    def graph_value(self) -> str:
        """Value expected by the Graph itemBody.contentType field."""
        if self is ContentType.HTML:
            return "HTML"
        return "Text"


class EmailTemplate(BaseModel):
    subject: str = ""
    body: str = ""


def default_pin_template() -> EmailTemplate:
    return EmailTemplate(subject=DEFAULT_PIN_SUBJECT, body=DEFAULT_PIN_BODY)


def default_otp_template() -> EmailTemplate:
    return EmailTemplate(subject=DEFAULT_OTP_SUBJECT, body=DEFAULT_OTP_BODY)


class EmailSettings(BaseModel):
    """Email delivery section of the settings document."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    method: DeliveryMethod = DeliveryMethod.DESKTOP
    graph_tenant_id: Optional[str] = Field(None, alias="graphTenantId")
    graph_client_id: Optional[str] = Field(None, alias="graphClientId")
    graph_client_secret: Optional[str] = Field(None, alias="graphClientSecret")
    graph_sender_address: Optional[str] = Field(None, alias="graphSenderAddress")
    pin_template: Optional[EmailTemplate] = Field(default_factory=default_pin_template, alias="pinTemplate")
    otp_template: Optional[EmailTemplate] = Field(default_factory=default_otp_template, alias="otpTemplate")

    def template_for(self, kind: CredentialKind) -> Optional[EmailTemplate]:
        if kind is CredentialKind.PIN:
            return self.pin_template
        if kind is CredentialKind.OTP:
            return self.otp_template
        raise ValueError(f"Unsupported credential kind: {kind}")

    def missing_graph_fields(self) -> List[str]:
        """Names of the Graph settings that are unset or blank."""
        required = [
            ("graphTenantId", self.graph_tenant_id),
            ("graphClientId", self.graph_client_id),
            ("graphClientSecret", self.graph_client_secret),
            ("graphSenderAddress", self.graph_sender_address),
        ]
        return [name for name, value in required if not (value or "").strip()]


class RecipientRef(BaseModel):
    """Directory user as far as delivery is concerned."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user_name: str = Field(alias="userName")
    full_name: Optional[str] = Field(None, alias="fullName")
    email: Optional[str] = None
    short_id: Optional[str] = Field(None, alias="shortId")  # stored PIN
    otp: Optional[str] = None


class DeliveryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    recipient: RecipientRef
    pin_override: Optional[str] = Field(None, alias="pinOverride")
    otp_override: Optional[str] = Field(None, alias="otpOverride")


@dataclass(frozen=True)
class RenderContext:
    """Resolved template tokens for one recipient."""

    user_name: str = ""
    full_name: str = ""
    email: str = ""
    pin: str = ""
    otp: str = ""

    def as_dict(self) -> Dict[str, str]:
        return {
            "userName": self.user_name,
            "fullName": self.full_name,
            "email": self.email,
            "pin": self.pin,
            "otp": self.otp,
        }

    def get(self, token: str) -> str:
        return self.as_dict().get(token, "")


class PreparedMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    to: str
    subject: str
    body: str
    content_type: ContentType = ContentType.TEXT


class AccessToken(BaseModel):
    value: str
    expires_at: float  # epoch seconds

    def is_valid(self, now: float, margin_seconds: float = 0.0) -> bool:
        return now < self.expires_at - margin_seconds


class DispatchSummary(BaseModel):
    success: int = 0
    failed: int = 0
    errors: List[str] = []


class DeliveryResult(BaseModel):
    method: DeliveryMethod
    success: int = 0
    failed: int = 0
    errors: List[str] = []
