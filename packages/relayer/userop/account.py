"""
Sponsored smart account — SimpleAccount v0.7，由单个 owner key 控制
- counterfactual 地址：Factory.getAddress(owner, salt)
- 未部署时 UserOp 带 factory + createAccount calldata
- 签名：personal_sign(userOpHash)，SimpleAccount 用 toEthSignedMessageHash 校验
"""
import logging

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from web3 import Web3

from chain.client import QueryClient
from config import ACCOUNT_SALT, CHAIN_ID, ENTRYPOINT_ADDRESS, SIMPLE_ACCOUNT_FACTORY
from relay.errors import ConfigurationError
from userop.builder import (
    FACTORY_ABI,
    build_create_account_calldata,
    build_execute_batch_calldata,
    build_execute_calldata,
    build_get_address_calldata,
    compute_user_op_hash,
    decode_function_result,
)

logger = logging.getLogger("relayer.userop.account")


class SponsoredAccount:
    """
    构造后 owner / address / factory 等字段不再变化。
    唯一的可变状态是 deployed 标记：首个 UserOp 上链后由 mark_deployed() 置位，只会 False → True，
    之后的 UserOp 不再带 factory 字段。实例由 ClientCache single-flight 构造，整个进程共享一个。
    """

    def __init__(
        self,
        owner: LocalAccount,
        address: str,
        query: QueryClient,
        *,
        deployed: bool,
        factory: str = SIMPLE_ACCOUNT_FACTORY,
        salt: int = ACCOUNT_SALT,
        entrypoint: str = ENTRYPOINT_ADDRESS,
        chain_id: int = CHAIN_ID,
    ):
        self.owner = owner
        self.address = Web3.to_checksum_address(address)
        self.query = query
        self.factory = factory
        self.salt = salt
        self.entrypoint = entrypoint
        self.chain_id = chain_id
        self._deployed = deployed

    @property
    def is_deployed(self) -> bool:
        return self._deployed

    def mark_deployed(self) -> None:
        """首个 receipt 成功后调用；幂等"""
        if not self._deployed:
            logger.info(f"Smart account deployed: {self.address}")
        self._deployed = True

    def encode_calls(self, calls: list[dict]) -> str:
        """单个 call → execute，多个 → executeBatch"""
        if not calls:
            raise ValueError("At least one call is required")
        if len(calls) == 1:
            c = calls[0]
            return build_execute_calldata(c["to"], c.get("value", 0), c.get("data", "0x"))
        return build_execute_batch_calldata(calls)

    def factory_args(self) -> tuple[str | None, str | None]:
        if self._deployed:
            return None, None
        return self.factory, build_create_account_calldata(self.owner.address, self.salt)

    async def get_nonce(self, key: int = 0) -> int:
        return await self.query.get_entrypoint_nonce(self.address, key)

    def sign_user_operation(self, op: dict) -> str:
        op_hash = compute_user_op_hash(op, self.entrypoint, self.chain_id)
        signed = self.owner.sign_message(encode_defunct(primitive=bytes(op_hash)))
        # HexBytes.hex() 新版本不带 0x 前缀
        return "0x" + signed.signature.hex().replace("0x", "")


async def to_sponsored_account(
    query: QueryClient,
    private_key: str,
    *,
    factory: str = SIMPLE_ACCOUNT_FACTORY,
    salt: int = ACCOUNT_SALT,
    entrypoint: str = ENTRYPOINT_ADDRESS,
    chain_id: int = CHAIN_ID,
) -> SponsoredAccount:
    """从 owner key 构造 sponsored account（两次读链：getAddress + getCode）"""
    if not private_key:
        raise ConfigurationError("RELAYER_PRIVATE_KEY not configured")
    try:
        owner = Account.from_key(private_key)
    except Exception as e:
        raise ConfigurationError("RELAYER_PRIVATE_KEY is invalid") from e

    result = await query.call(factory, build_get_address_calldata(owner.address, salt))
    address = decode_function_result(FACTORY_ABI, "getAddress", result)[0]
    code = await query.get_code(address)
    deployed = bool(code) and code not in ("0x", "0x0")

    logger.info(f"Smart account for {owner.address}: {address} (deployed={deployed})")
    return SponsoredAccount(
        owner,
        address,
        query,
        deployed=deployed,
        factory=factory,
        salt=salt,
        entrypoint=entrypoint,
        chain_id=chain_id,
    )
