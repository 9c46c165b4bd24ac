"""
ERC-4337 UserOperation 构造 + hash 计算
- 合约调用编码（按 ABI 找函数 → selector + eth_abi encode）
- SimpleAccount v0.7 (execute / executeBatch)
- SimpleAccountFactory v0.7 (getAddress / createAccount)
- EntryPoint v0.7 (getNonce)
全部离线编码，不依赖 provider
"""
import logging
from typing import Any, Sequence

from eth_abi import decode, encode
from web3 import Web3

logger = logging.getLogger("relayer.userop.builder")

ZERO_ADDRESS = "0x" + "00" * 20

# Dummy signature for gas estimation.
# Must be a valid ECDSA format: r (32B) + s (32B) + v (1B), s in low-half order.
DUMMY_SIGNATURE = "0x" + "00" * 31 + "01" + "00" * 31 + "01" + "1b"

# ── ABI 片段 ──

SIMPLE_ACCOUNT_ABI = [
    {
        "inputs": [
            {"name": "dest", "type": "address"},
            {"name": "value", "type": "uint256"},
            {"name": "func", "type": "bytes"},
        ],
        "name": "execute",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "dest", "type": "address[]"},
            {"name": "value", "type": "uint256[]"},
            {"name": "func", "type": "bytes[]"},
        ],
        "name": "executeBatch",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]

FACTORY_ABI = [
    {
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "salt", "type": "uint256"},
        ],
        "name": "getAddress",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "salt", "type": "uint256"},
        ],
        "name": "createAccount",
        "outputs": [{"name": "ret", "type": "address"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]

ENTRYPOINT_ABI = [
    {
        "inputs": [
            {"name": "sender", "type": "address"},
            {"name": "key", "type": "uint192"},
        ],
        "name": "getNonce",
        "outputs": [{"name": "nonce", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]


# ── ABI 编码 ──

def _abi_type(param: dict) -> str:
    """ABI 参数 → canonical 类型字符串（tuple 展开成 (a,b)）"""
    typ = param["type"]
    if typ.startswith("tuple"):
        inner = ",".join(_abi_type(c) for c in param.get("components", []))
        return f"({inner}){typ[len('tuple'):]}"
    return typ


def find_function(abi: Sequence[dict], name: str, arg_count: int) -> dict:
    candidates = [
        entry for entry in abi
        if entry.get("type", "function") == "function" and entry.get("name") == name
    ]
    if not candidates:
        raise ValueError(f"Function {name!r} not found in ABI")
    for entry in candidates:
        if len(entry.get("inputs", [])) == arg_count:
            return entry
    raise ValueError(f"Function {name!r} does not take {arg_count} arguments")


def function_selector(entry: dict) -> bytes:
    types = ",".join(_abi_type(p) for p in entry.get("inputs", []))
    return bytes(Web3.keccak(text=f"{entry['name']}({types})")[:4])


def _coerce_arg(typ: str, value: Any) -> Any:
    """地址转 checksum，bytes 接受 0x hex 字符串"""
    if typ == "address" and isinstance(value, str):
        return Web3.to_checksum_address(value)
    if typ.startswith("bytes") and not typ.endswith("]") and isinstance(value, str):
        return bytes.fromhex(value.replace("0x", ""))
    if typ.endswith("]") and isinstance(value, (list, tuple)):
        elem = typ[: typ.rindex("[")]
        return [_coerce_arg(elem, v) for v in value]
    return value


def encode_function_call(abi: Sequence[dict], name: str, args: Sequence[Any]) -> str:
    entry = find_function(abi, name, len(args))
    types = [_abi_type(p) for p in entry.get("inputs", [])]
    values = [_coerce_arg(t, v) for t, v in zip(types, args)]
    data = function_selector(entry) + encode(types, values)
    return "0x" + data.hex()


def decode_function_result(abi: Sequence[dict], name: str, result: str) -> tuple:
    entry = next(e for e in abi if e.get("name") == name)
    types = [_abi_type(p) for p in entry.get("outputs", [])]
    return decode(types, bytes.fromhex(result.replace("0x", "")))


def _hex_to_bytes(h: str | None) -> bytes:
    if not h or h == "0x":
        return b""
    return bytes.fromhex(h.replace("0x", ""))


def _hex_to_int(h: str | int | None) -> int:
    if h is None:
        return 0
    if isinstance(h, int):
        return h
    return int(h, 16)


# ── 公开 API ──

def build_get_address_calldata(owner: str, salt: int = 0) -> str:
    return encode_function_call(FACTORY_ABI, "getAddress", [owner, salt])


def build_create_account_calldata(owner: str, salt: int = 0) -> str:
    return encode_function_call(FACTORY_ABI, "createAccount", [owner, salt])


def build_get_nonce_calldata(sender: str, key: int = 0) -> str:
    return encode_function_call(ENTRYPOINT_ABI, "getNonce", [sender, key])


def build_execute_calldata(to: str, value: int, data: str) -> str:
    """包装成 SimpleAccount.execute(to, value, data)"""
    return encode_function_call(SIMPLE_ACCOUNT_ABI, "execute", [to, value, _hex_to_bytes(data)])


def build_execute_batch_calldata(calls: list[dict]) -> str:
    """
    包装成 SimpleAccount.executeBatch(dests, values, funcs)
    calls: [{"to": "0x...", "value": 0, "data": "0x..."}]
    """
    dests = [c["to"] for c in calls]
    values = [c.get("value", 0) for c in calls]
    funcs = [_hex_to_bytes(c.get("data")) for c in calls]
    return encode_function_call(SIMPLE_ACCOUNT_ABI, "executeBatch", [dests, values, funcs])


def build_user_operation(
    sender: str,
    nonce: int,
    call_data: str,
    factory: str | None = None,
    factory_data: str | None = None,
) -> dict:
    """
    构造 ERC-4337 v0.7 PackedUserOperation（未签名）
    gas 值先填 placeholder，由 paymaster / bundler 填充
    """
    return {
        "sender": Web3.to_checksum_address(sender),
        "nonce": hex(nonce),
        "factory": Web3.to_checksum_address(factory) if factory else None,
        "factoryData": factory_data if factory else None,
        "callData": call_data,
        "callGasLimit": "0x0",
        "verificationGasLimit": "0x0",
        "preVerificationGas": "0x0",
        "maxFeePerGas": "0x0",
        "maxPriorityFeePerGas": "0x0",
        "signature": DUMMY_SIGNATURE,
        "paymaster": None,
        "paymasterData": None,
        "paymasterVerificationGasLimit": None,
        "paymasterPostOpGasLimit": None,
    }


def clean_user_operation(op: dict) -> dict:
    """去掉 None 字段，bundler 拒收 null"""
    return {k: v for k, v in op.items() if v is not None}


def compute_user_op_hash(op: dict, entrypoint: str, chain_id: int) -> bytes:
    """
    计算 v0.7 PackedUserOperation 的 hash
    hash(pack(userOp), entryPoint, chainId)
    """
    nonce = _hex_to_int(op["nonce"])

    # initCode = factory + factoryData (or empty)
    if op.get("factory") and op["factory"] != ZERO_ADDRESS:
        init_code = _hex_to_bytes(op["factory"]) + _hex_to_bytes(op.get("factoryData"))
    else:
        init_code = b""
    init_code_hash = Web3.keccak(init_code)
    call_data_hash = Web3.keccak(_hex_to_bytes(op["callData"]))

    # accountGasLimits = verificationGasLimit (16 bytes) || callGasLimit (16 bytes)
    vgl = _hex_to_int(op.get("verificationGasLimit", "0x0"))
    cgl = _hex_to_int(op.get("callGasLimit", "0x0"))
    account_gas_limits = vgl.to_bytes(16, "big") + cgl.to_bytes(16, "big")

    pre_verification_gas = _hex_to_int(op.get("preVerificationGas", "0x0"))

    # gasFees = maxPriorityFeePerGas (16 bytes) || maxFeePerGas (16 bytes)
    mpfpg = _hex_to_int(op.get("maxPriorityFeePerGas", "0x0"))
    mfpg = _hex_to_int(op.get("maxFeePerGas", "0x0"))
    gas_fees = mpfpg.to_bytes(16, "big") + mfpg.to_bytes(16, "big")

    # paymasterAndData = paymaster + pmVerificationGasLimit + pmPostOpGasLimit + paymasterData
    if op.get("paymaster"):
        pm = _hex_to_bytes(op["paymaster"])
        pm_vgl = _hex_to_int(op.get("paymasterVerificationGasLimit") or "0x0")
        pm_pogl = _hex_to_int(op.get("paymasterPostOpGasLimit") or "0x0")
        paymaster_and_data = (
            pm + pm_vgl.to_bytes(16, "big") + pm_pogl.to_bytes(16, "big")
            + _hex_to_bytes(op.get("paymasterData"))
        )
    else:
        paymaster_and_data = b""
    paymaster_and_data_hash = Web3.keccak(paymaster_and_data)

    packed = encode(
        ["address", "uint256", "bytes32", "bytes32", "bytes32", "uint256", "bytes32", "bytes32"],
        [
            op["sender"],
            nonce,
            init_code_hash,
            call_data_hash,
            account_gas_limits,
            pre_verification_gas,
            gas_fees,
            paymaster_and_data_hash,
        ],
    )

    # Final hash: keccak256(abi.encode(keccak256(packed), entryPoint, chainId))
    inner_hash = Web3.keccak(packed)
    return Web3.keccak(
        encode(
            ["bytes32", "address", "uint256"],
            [inner_hash, Web3.to_checksum_address(entrypoint), chain_id],
        )
    )
