"""Caller context — who is acting, and on which wallet.

The ledger does not authenticate anyone.  The upstream gateway resolves
the session and forwards the company and actor as headers:

    X-Company-Id     company the caller acts for
    X-Actor-Id       authenticated user id
    X-Actor-Name     display name (used for received_by / audit)

get_request_context() turns those into a RequestContext for the routers;
services only ever see the plain dataclasses below.
"""

from dataclasses import dataclass

from fastapi import Header, HTTPException, status

from farmvault.models.wallet import wallet_id_for


@dataclass(frozen=True)
class Actor:
    id: str
    name: str


@dataclass(frozen=True)
class WalletKey:
    """Scope of one shared harvest wallet."""
    company_id: str
    project_id: str
    crop_type: str

    @property
    def wallet_id(self) -> str:
        return wallet_id_for(self.company_id, self.project_id, self.crop_type)


@dataclass(frozen=True)
class RequestContext:
    company_id: str
    actor: Actor

    def wallet_key(self, project_id: str, crop_type: str) -> WalletKey:
        return WalletKey(self.company_id, project_id, crop_type)


async def get_request_context(
    x_company_id: str | None = Header(None),
    x_actor_id: str | None = Header(None),
    x_actor_name: str | None = Header(None),
) -> RequestContext:
    """FastAPI dependency: build the caller context from gateway headers."""
    if not x_company_id or not x_actor_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing company or actor context",
        )
    return RequestContext(
        company_id=x_company_id,
        actor=Actor(id=x_actor_id, name=x_actor_name or x_actor_id),
    )
