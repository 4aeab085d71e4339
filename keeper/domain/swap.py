from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class TokenInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    address: Optional[str] = None
    decimals: int


class OneInchQuoteResponse(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    from_token: TokenInfo = Field(alias="fromToken")
    to_token: TokenInfo = Field(alias="toToken")
    from_token_amount: int = Field(alias="fromTokenAmount")
    to_token_amount: int = Field(alias="toTokenAmount")


class OneInchTx(BaseModel):
    model_config = ConfigDict(extra="ignore")

    to: str
    data: str
    value: Optional[str] = None


class OneInchSwapResponse(OneInchQuoteResponse):
    tx: OneInchTx
