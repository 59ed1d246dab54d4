from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from tripseal.apps.api.deps import Principal, get_current_principal
from tripseal.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tripseal.apps.api.response import SuccessEnvelope, success_response
from tripseal.services.coins import allocate_coins


router = APIRouter(prefix="/coins", tags=["coins"], responses=DEFAULT_ERROR_RESPONSES)


class AllocateRequest(BaseModel):
    # Amount is validated by the service so bad values map to 400, not 422.
    toUserId: str | None = Field(default=None)
    amount: int | float | None = Field(default=None)
    reasonText: str | None = Field(default=None, max_length=500)


class AllocateResponse(BaseModel):
    transactionId: str
    senderBalance: int
    receiverBalance: int


@router.post("/allocate", response_model=SuccessEnvelope[AllocateResponse] | AllocateResponse)
async def allocate(
    request: Request,
    payload: AllocateRequest,
    principal: Principal = Depends(get_current_principal),
) -> dict:
    # The transfer opens its own serializable session.
    result = await allocate_coins(
        sender=principal.actor,
        to_user_id=payload.toUserId,
        amount=payload.amount,
        reason_text=payload.reasonText,
        request=request,
    )
    response = AllocateResponse(
        transactionId=result.transaction_id,
        senderBalance=result.sender_balance,
        receiverBalance=result.receiver_balance,
    )
    return success_response(request=request, data=response)
