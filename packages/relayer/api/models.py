"""
Pydantic 请求/响应模型
"""
from typing import Any

from pydantic import BaseModel, Field, field_validator
from web3 import Web3

from relay.models import CallDescriptor, UserOperationReceipt


# ===== Relay =====

class CallRequest(BaseModel):
    address: str = Field(..., description="Target contract address")
    function_name: str = Field(..., min_length=1, description="Contract function name")
    args: list[Any] = Field(default_factory=list)

    @field_validator("address")
    @classmethod
    def address_is_valid(cls, v: str) -> str:
        if not Web3.is_address(v):
            raise ValueError("Invalid contract address")
        return v

    def to_descriptor(self) -> CallDescriptor:
        return CallDescriptor(self.address, self.function_name, tuple(self.args))


class RelayRequest(CallRequest):
    max_retries: int | None = Field(None, ge=0, le=5)


class ParallelRelayRequest(BaseModel):
    first: CallRequest
    second: CallRequest


class BatchRelayRequest(BaseModel):
    calls: list[CallRequest] = Field(..., min_length=1)


class ReceiptResponse(BaseModel):
    user_op_hash: str
    transaction_hash: str
    success: bool

    @classmethod
    def from_receipt(cls, receipt: UserOperationReceipt) -> "ReceiptResponse":
        return cls(
            user_op_hash=receipt.user_op_hash,
            transaction_hash=receipt.transaction_hash,
            success=receipt.success,
        )


# ===== Nonce =====

class NonceResponse(BaseModel):
    account: str
    nonce: int
