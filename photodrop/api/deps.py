"""Common API dependencies: store/signer handles, client context, owner checks."""

from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from photodrop.errors import DeliveryError
from photodrop.services.activity_service import ClientContext
from photodrop.store import PersistentStore
from photodrop.utils.security import decode_token
from photodrop.utils.signing import CapabilitySigner

bearer_scheme = HTTPBearer()


def get_store(request: Request) -> PersistentStore:
    return request.app.state.store


def get_signer(request: Request) -> CapabilitySigner:
    return request.app.state.signer


def get_client(request: Request) -> ClientContext:
    """Client address as seen through the reverse proxy, plus user agent."""
    forwarded = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
    ip = forwarded or request.headers.get("x-real-ip") or (request.client.host if request.client else "")
    return ClientContext(
        ip=ip,
        user_agent=request.headers.get("user-agent", ""),
        country=request.headers.get("cf-ipcountry"),
    )


def http_error(e: DeliveryError) -> HTTPException:
    """Translate a service error into the response the client is allowed to see."""
    return HTTPException(status_code=e.status_code, detail={"error": e.detail})


@dataclass
class Owner:
    id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def get_current_owner(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> Owner:
    """Extract and validate the collection owner from a JWT access token."""
    try:
        payload = decode_token(credentials.credentials)
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    if payload.get("type") != "access" or not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
        )
    return Owner(id=payload["sub"], role=payload.get("role", "owner"))


def require_admin(owner: Owner = Depends(get_current_owner)) -> Owner:
    """Require the current owner to be an admin."""
    if not owner.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return owner


async def owned_collection(store: PersistentStore, collection_id: str, owner: Owner):
    collection = (await store.get_collections()).get(collection_id)
    if collection is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Collection not found")
    if collection.owner_id != owner.id and not owner.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your collection")
    return collection
