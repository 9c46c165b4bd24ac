"""
Call descriptor + UserOperation receipt
"""
from dataclasses import dataclass, field
from typing import Any, Sequence

from chain.contract import CONTRACT_ABI
from userop.builder import encode_function_call


@dataclass(frozen=True)
class CallDescriptor:
    """{目标合约, 函数名, 有序参数}；abi 为空时用默认合约 ABI"""

    address: str
    function_name: str
    args: tuple = ()
    abi: Sequence[dict] | None = field(default=None, compare=False, repr=False)
    value: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", tuple(self.args))

    def to_call(self) -> dict:
        data = encode_function_call(self.abi or CONTRACT_ABI, self.function_name, list(self.args))
        return {"to": self.address, "value": self.value, "data": data}


@dataclass
class UserOperationReceipt:
    user_op_hash: str
    success: bool
    transaction_hash: str
    reason: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_rpc(cls, payload: dict) -> "UserOperationReceipt":
        receipt = payload.get("receipt") or {}
        return cls(
            user_op_hash=payload.get("userOpHash", ""),
            success=bool(payload.get("success", False)),
            transaction_hash=receipt.get("transactionHash", ""),
            reason=payload.get("reason"),
            raw=payload,
        )
