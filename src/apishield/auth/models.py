"""Wire models for the token refresh endpoint."""

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class RefreshRequest(BaseModel):
    """Body posted to the refresh endpoint."""

    refresh_token: str = Field(..., serialization_alias="refreshToken", min_length=1)

    def to_payload(self) -> dict[str, str]:
        return self.model_dump(by_alias=True)


class RefreshResponse(BaseModel):
    """Schema for the refresh endpoint's JSON response.

    Servers differ in naming, so the access token is accepted as `token`,
    `accessToken` or `access_token`, and a rotated refresh token as
    `refreshToken` or `refresh_token`.

    Attributes:
        access_token: Newly issued access token
        refresh_token: Rotated refresh token, None when the server keeps the old one

    Example:
        >>> RefreshResponse.model_validate({"token": "abc"}).access_token
        'abc'
    """

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(
        ...,
        validation_alias=AliasChoices("token", "accessToken", "access_token"),
        min_length=1,
    )
    refresh_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("refreshToken", "refresh_token"),
    )

    @field_validator("access_token")
    @classmethod
    def validate_access_token(cls, v: str) -> str:
        """Reject whitespace-only tokens."""
        if not v.strip():
            raise ValueError("access_token cannot be empty or whitespace")
        return v.strip()

    @field_validator("refresh_token")
    @classmethod
    def normalize_refresh_token(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None


__all__ = ["RefreshRequest", "RefreshResponse"]
