"""Human review actions over content items: submit, approve, delete."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from editorial.models import ContentStatus, ValidationResult, utcnow
from editorial.publish_gate import PublishGate
from editorial.structural_validator import StructuralValidator

log = logging.getLogger(__name__)


@dataclass
class ReviewOutcome:
    content_id: str
    transitioned: bool
    status: str
    validation: ValidationResult | None = None
    reason: str = ""


class ReviewService:
    """Status transitions a reviewer can trigger. Every transition is a compare-and-set."""

    def __init__(self, content, validator: StructuralValidator | None = None,
                 gate: PublishGate | None = None):
        self.content = content
        self.validator = validator or StructuralValidator()
        self.gate = gate or PublishGate()

    def submit_for_review(self, content_id: str) -> ReviewOutcome:
        """draft → pending_review, only when the structural checks pass."""
        item = self.content.get(content_id)
        result = self.validator.validate(item)
        annotations = {
            "validation_errors": result.errors,
            "validation_warnings": result.warnings,
        }
        if not result.passed:
            self.content.update(content_id, annotations, expected_status=ContentStatus.DRAFT)
            log.info(f"Submit blocked: {len(result.errors)} errors", extra={"content_id": content_id})
            return ReviewOutcome(content_id, False, item["status"], result, "validation failed")

        updated = self.content.update(
            content_id,
            {**annotations, "status": ContentStatus.PENDING_REVIEW, "pending_since": utcnow().isoformat()},
            expected_status=ContentStatus.DRAFT,
        )
        if updated is None:
            return ReviewOutcome(content_id, False, self.content.get(content_id)["status"],
                                 result, "not a draft")
        log.info("Submitted for review", extra={"content_id": content_id})
        return ReviewOutcome(content_id, True, updated["status"], result)

    def approve(self, content_id: str, reviewer: str = "") -> ReviewOutcome:
        """pending_review → approved, only when the publish gate passes."""
        item = self.content.get(content_id)
        result = self.gate.validate(item)
        if not result.passed:
            log.info(f"Approval blocked by publish gate: {result.errors}", extra={"content_id": content_id})
            return ReviewOutcome(content_id, False, item["status"], result, "publish gate failed")

        updated = self.content.update(
            content_id,
            {
                "status": ContentStatus.APPROVED,
                "approved_at": utcnow().isoformat(),
                "approved_by": reviewer,
                "validation_errors": [],
                "validation_warnings": result.warnings,
            },
            expected_status=ContentStatus.PENDING_REVIEW,
        )
        if updated is None:
            current = self.content.get(content_id)["status"]
            return ReviewOutcome(content_id, False, current, result, f"item is {current}")
        log.info(f"Approved by {reviewer or 'reviewer'}", extra={"content_id": content_id})
        return ReviewOutcome(content_id, True, updated["status"], result)

    def soft_delete(self, content_id: str) -> ReviewOutcome:
        """Mark an item deleted. Published items cannot be deleted."""
        item = self.content.get(content_id)
        status = item["status"]
        if status in (ContentStatus.PUBLISHED, ContentStatus.DELETED):
            return ReviewOutcome(content_id, False, status, reason=f"item is {status}")

        updated = self.content.update(
            content_id,
            {"status": ContentStatus.DELETED, "deleted_at": utcnow().isoformat()},
            expected_status=status,
        )
        if updated is None:
            current = self.content.get(content_id)["status"]
            return ReviewOutcome(content_id, False, current, reason="status changed concurrently")
        log.info(f"Soft-deleted ({status} → deleted)", extra={"content_id": content_id})
        return ReviewOutcome(content_id, True, ContentStatus.DELETED)
