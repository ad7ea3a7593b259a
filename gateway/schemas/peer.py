from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class PeerCreateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    note: str = ""


class PeerProvisioned(BaseModel):
    peer_id: str
    interface: str
    client_ipv4: str
    peer_public_key: str
    peer_private_key: str
    preshared_key: str | None = None
    allowed_ips: str
    endpoint: str
    created_at: datetime
    note: str = ""

    @property
    def created_at_rfc3339(self) -> str:
        return self.created_at.strftime("%Y-%m-%dT%H:%M:%SZ")

    def template_context(self) -> dict[str, Any]:
        context = self.model_dump()
        context["preshared_key"] = self.preshared_key or ""
        context["created_at"] = str(self.created_at)
        context["created_at_rfc3339"] = self.created_at_rfc3339
        return context

