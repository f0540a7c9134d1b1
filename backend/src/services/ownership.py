"""
Write-ownership rule for clinical resources.

Applied to every consultation and medical record update or delete, after the
read gate. Only the provider who created the resource may change it; a
(full, approved) connection is a read privilege and never suffices. Admins
are not exempt.
"""

import logging

from core.exceptions import UnauthorizedError
from services.authorization import Actor, OwnedResource

logger = logging.getLogger(__name__)


def can_mutate(actor: Actor, resource: OwnedResource) -> bool:
    return actor.is_provider and actor.id == resource.creator_provider_id


def ensure_can_mutate(actor: Actor, resource: OwnedResource) -> None:
    """
    Raises:
        UnauthorizedError: If the actor did not create the resource
    """
    if not can_mutate(actor, resource):
        logger.info(
            f"Mutation rejected: actor {actor.id} is not the creator of "
            f"{type(resource).__name__} {resource.id}"
        )
        raise UnauthorizedError("Only the creating provider can modify this record")
