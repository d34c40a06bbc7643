"""Client resolver: who a booking belongs to.

Resolution never writes: an unknown e-mail yields a *staged* client that the
booking commit persists, so an abandoned search leaves no half-made client.
"""

import logging
import uuid
from dataclasses import dataclass

from pydantic import BaseModel, EmailStr, TypeAdapter, ValidationError

from staydesk.domain.records import Client, StagedClient
from staydesk.domain.repositories import ClientRepository, UnitOfWorkFactory
from staydesk.domain.results import PERSISTENCE_FAILURE, Ok, PersistenceError, Result, invalid_input, not_found

logger = logging.getLogger(__name__)

_email_adapter = TypeAdapter(EmailStr)


class ClientProfile(BaseModel):
    """Profile fields a caller may offer alongside an e-mail."""

    name: str | None = None
    phone: str | None = None


@dataclass(frozen=True)
class ClientResolution:
    existing: Client | None = None
    staged: StagedClient | None = None

    @property
    def is_new(self) -> bool:
        return self.existing is None


def normalize_email(email: str) -> str:
    return email.strip().lower()


class ClientResolver:
    def __init__(self, uow_factory: UnitOfWorkFactory) -> None:
        self.uow_factory = uow_factory

    async def resolve(
        self,
        email: str,
        candidate_profile: ClientProfile | None = None,
        *,
        staged_by_staff: bool = False,
    ) -> Result[ClientResolution]:
        """Find the client owning ``email`` or stage a new one from ``candidate_profile``.

        An existing client always wins: profile fields supplied by the caller
        are ignored rather than merged.
        """
        email = normalize_email(email or "")
        if not email:
            return invalid_input("Client e-mail is required.")
        try:
            _email_adapter.validate_python(email)
        except ValidationError:
            return invalid_input("Client e-mail is not a valid address.", email=email)

        try:
            async with self.uow_factory() as uow:
                existing = await uow.clients.find_by_email(email)
        except PersistenceError:
            logger.exception("Client lookup failed")
            return PERSISTENCE_FAILURE

        if existing is not None:
            return Ok(ClientResolution(existing=existing))

        profile = candidate_profile or ClientProfile()
        name = (profile.name or "").strip()
        if not name:
            return invalid_input("A name is required to register a new client.", email=email)
        staged = StagedClient(
            name=name,
            email=email,
            phone=(profile.phone or "").strip() or None,
            # Staff vouch for the identity of clients they register at the desk
            is_verified=staged_by_staff,
        )
        return Ok(ClientResolution(staged=staged))

    async def resolve_by_id(self, client_id: uuid.UUID) -> Result[Client]:
        try:
            async with self.uow_factory() as uow:
                client = await uow.clients.get(client_id)
        except PersistenceError:
            logger.exception("Client lookup failed for %s", client_id)
            return PERSISTENCE_FAILURE
        if client is None:
            return not_found(f"Client {client_id} not found.", client_id=str(client_id))
        return Ok(client)

    @staticmethod
    async def persist(clients: ClientRepository, staged: StagedClient) -> Client:
        """Create ``staged`` inside the caller's unit of work.

        Re-resolves by e-mail first, so a client registered between the
        resolve step and the commit is reused instead of duplicated.
        """
        existing = await clients.find_by_email(staged.email)
        if existing is not None:
            return existing
        return await clients.create(staged)
