"""Pydantic v2 schemas for payment initiation and gateway callbacks."""

import uuid
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class PaymentInitiate(BaseModel):
    """Start checkout for a booking. The amount always comes from the booking."""

    model_config = ConfigDict(extra="forbid")

    booking_id: uuid.UUID


class RefundClaim(BaseModel):
    model_config = ConfigDict(extra="forbid")

    booking_id: uuid.UUID


class PaymentSessionResponse(BaseModel):
    url: str
    transaction_id: str
    amount: Decimal


class GatewayCallback(BaseModel):
    """Fields read from a success / IPN / extra-success callback.

    The gateway posts many more fields; they are kept in the audit log but
    never copied onto a booking.
    """

    model_config = ConfigDict(extra="ignore")

    tran_id: str = Field(..., min_length=1, max_length=120)
    val_id: str | None = Field(None, max_length=120)
    amount: Decimal | None = Field(None, ge=0)
    status: str | None = None


class CallbackAck(BaseModel):
    status: str
    outcome: str | None = None
