# controllers/submission_gate.py
import logging
from typing import Optional
from schemas import Draft, Submitter

logger = logging.getLogger(__name__)

ALLOWED_ROLES = ("Site Engineer", "ICT", "Admin", "Manager")


def authorize(submitter: Optional[Submitter]) -> Optional[str]:
    """Return the blocking message for an unauthorized submitter, or None."""
    if submitter is None or not submitter.user_id:
        return "You must be logged in to submit."
    if submitter.role not in ALLOWED_ROLES:
        return (
            f"Your role ({submitter.role or 'none'}) is not permitted to submit material requests. "
            "Please contact an authorized Site Engineer."
        )
    return None


def submit(draft: Draft, submitter: Submitter, sink) -> dict:
    """Forward an authorized draft to the sink; sink errors propagate to the caller."""
    logger.info("Submitting draft for %s (%s) with %d items", submitter.username, submitter.role, len(draft.items))
    return sink.submit_material_request(draft, submitter)
