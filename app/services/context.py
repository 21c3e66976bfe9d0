import uuid
from dataclasses import dataclass


@dataclass(frozen=True)
class ActorContext:
    """Who is acting and for which tenant.

    Built by the API layer from gateway headers and passed explicitly to
    every service call; services never look identity up on their own.
    """

    actor_id: uuid.UUID
    organisation_id: uuid.UUID
