from pydantic import BaseModel, Field


class DepositCheckoutRequest(BaseModel):
    booking_id: str = Field(..., min_length=1, max_length=36)
    public_view_token: str = Field(..., min_length=1, max_length=64)
    deposit_choice: int


class BalanceCheckoutRequest(BaseModel):
    booking_id: str = Field(..., min_length=1, max_length=36)


class CheckoutResponse(BaseModel):
    url: str
    session_id: str
    amount: int
