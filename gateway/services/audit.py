import logging

audit_logger = logging.getLogger("gateway.audit")


def audit(action: str, peer_id: str | None = None, detail: str | None = None) -> None:
    audit_logger.info("action=%s peer_id=%s detail=%s", action, peer_id, detail)
