from __future__ import annotations

from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

USER_ID_ALIASES = AliasChoices("user_id", "userId")


class RedeemCodeRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    code: str = Field(min_length=1, max_length=64)
    user_id: UUID = Field(validation_alias=USER_ID_ALIASES)


class ExpireSubscriptionRequest(BaseModel):
    user_id: UUID = Field(validation_alias=USER_ID_ALIASES)


class ExpireDueRequest(BaseModel):
    tiers: list[str] | None = Field(default=None, min_length=1)


class TrialTransitionRequest(BaseModel):
    user_id: UUID = Field(validation_alias=USER_ID_ALIASES)


class VerifyReceiptRequest(BaseModel):
    receipt_data: str = Field(
        min_length=1,
        validation_alias=AliasChoices("receiptData", "receipt_data"),
    )
    user_id: UUID = Field(validation_alias=USER_ID_ALIASES)
