"""Shared API dependencies for authentication and service access."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from parley.core.errors import AuthenticationError
from parley.realtime.gateway import RealtimeGateway
from parley.services.chat_service import ChatService
from parley.services.media import MediaUploader

# HTTP Bearer scheme for JWT authentication
bearer_scheme = HTTPBearer()


def get_current_user_id(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
) -> str:
    """Return the user id carried by the bearer token.

    Raises:
        HTTPException: If the token is invalid or expired.
    """
    verifier = request.app.state.realtime.verifier
    try:
        return verifier.verify(credentials.credentials)
    except AuthenticationError as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from err


def get_chat_service(request: Request) -> ChatService:
    """Return the chat service created at startup."""
    return request.app.state.chat_service


def get_gateway(request: Request) -> RealtimeGateway:
    return request.app.state.realtime.gateway


def get_media_uploader(request: Request) -> MediaUploader:
    """Return the configured media uploader, or 503 when none is wired in."""
    uploader: MediaUploader | None = getattr(request.app.state, "media_uploader", None)
    if uploader is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Media storage is not configured",
        )
    return uploader


CurrentUserDep = Annotated[str, Depends(get_current_user_id)]
ChatServiceDep = Annotated[ChatService, Depends(get_chat_service)]
GatewayDep = Annotated[RealtimeGateway, Depends(get_gateway)]
MediaUploaderDep = Annotated[MediaUploader, Depends(get_media_uploader)]
