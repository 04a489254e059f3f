"""Core GraphQL schema."""
from typing import Annotated, Union

import strawberry
from django.contrib.auth import authenticate
from strawberry.types import Info

from apps.core.auth import create_access_token
from apps.core.context import Context


@strawberry.type
class CurrentUser:
    """Current authenticated user info."""

    id: int
    email: str
    first_name: str
    last_name: str
    business_id: int | None
    business_name: str | None
    roles: list[str]
    permissions: list[str]


@strawberry.type
class AuthPayload:
    """Authentication response with an access token."""

    access_token: str
    user_id: int
    email: str
    business_id: int | None


@strawberry.type
class AuthError:
    message: str


AuthResult = Annotated[Union[AuthPayload, AuthError], strawberry.union("AuthResult")]


@strawberry.type
class CoreQuery:
    """Core queries including auth status."""

    @strawberry.field
    def me(self, info: Info[Context, None]) -> CurrentUser | None:
        """Get current authenticated user."""
        user = info.context.user
        if user is None:
            return None

        return CurrentUser(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            business_id=user.business_id,
            business_name=user.business.name if user.business else None,
            roles=[r.name for r in user.roles.all()],
            permissions=sorted(user.effective_permissions),
        )


@strawberry.type
class AuthMutation:
    """Authentication mutations."""

    @strawberry.mutation
    def login(self, info: Info[Context, None], email: str, password: str) -> AuthResult:
        """Authenticate user and return an access token."""
        user = authenticate(username=email, password=password)

        if user is None or not user.is_active:
            return AuthError(message="Invalid email or password")

        if user.business and not user.business.is_active:
            return AuthError(message="Business is inactive")

        info.context.session.sign_in(user)
        return AuthPayload(
            access_token=create_access_token(user),
            user_id=user.id,
            email=user.email,
            business_id=user.business_id,
        )
