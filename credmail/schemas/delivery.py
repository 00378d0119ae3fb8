from typing import List, Optional

from pydantic import BaseModel

from credmail.core.models import CredentialKind, DeliveryRequest, EmailSettings, PreparedMessage


class CredentialSendRequest(BaseModel):
    kind: CredentialKind
    requests: List[DeliveryRequest]
    settings: Optional[EmailSettings] = None


class CredentialPreviewResponse(BaseModel):
    ok: bool = True
    kind: CredentialKind
    messages: List[PreparedMessage]
    errors: List[str]
