"""
Moderation Gateway — Abstract Interface

How the engine enacts a recommendation on the target content: hide and
reject it, or queue it for human triage. Swap implementations to wire
the engine into a real forum backend.

AuditModerationGateway is the bundled implementation: it records both
actions as events on the activity chain.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from spamshield.audit import AuditChain


class ModerationGateway(ABC):
    """Abstract base for moderation-action collaborators."""

    @abstractmethod
    def reject(
        self,
        target_type: str,
        target_id: str,
        workspace_id: Optional[str],
        reason: str,
        description: str,
        detection_id: Optional[str] = None,
        is_automatic: bool = True,
    ) -> None:
        """Hide/reject the target and record the moderation action."""
        ...

    @abstractmethod
    def enqueue(
        self,
        target_type: str,
        target_id: str,
        workspace_id: Optional[str],
        title: str,
        priority: str,
        metadata: dict,
        detection_id: Optional[str] = None,
    ) -> None:
        """Put the target on the human moderation queue."""
        ...


class AuditModerationGateway(ModerationGateway):
    """Records moderation actions on the activity chain."""

    def __init__(self, audit_chain: AuditChain):
        self.audit_chain = audit_chain

    def reject(self, target_type, target_id, workspace_id, reason, description,
               detection_id=None, is_automatic=True) -> None:
        self.audit_chain.log(
            event_type="auto_rejected",
            data={
                "action_type": "REJECT",
                "target_type": target_type,
                "target_id": target_id,
                "workspace_id": workspace_id,
                "reason": reason,
                "description": description,
                "is_automatic": is_automatic,
                "status": "COMPLETED",
            },
            subject_id=detection_id,
        )

    def enqueue(self, target_type, target_id, workspace_id, title, priority,
                metadata, detection_id=None) -> None:
        self.audit_chain.log(
            event_type="review_queued",
            data={
                "target_type": target_type,
                "target_id": target_id,
                "workspace_id": workspace_id,
                "title": title,
                "priority": priority,
                "status": "PENDING",
                "metadata": metadata,
            },
            subject_id=detection_id,
        )
