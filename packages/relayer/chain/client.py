"""
读链客户端 — chain id / pending nonce / eth_call / code / gas price
"""
import logging

from web3 import Web3

from chain.rpc import JsonRpcTransport
from config import ENTRYPOINT_ADDRESS
from userop.builder import ENTRYPOINT_ABI, build_get_nonce_calldata, decode_function_result

logger = logging.getLogger("relayer.chain.client")


class QueryClient:
    def __init__(self, transport: JsonRpcTransport, entrypoint: str | None = None):
        self.transport = transport
        self.entrypoint = entrypoint or ENTRYPOINT_ADDRESS

    async def chain_id(self) -> int:
        return int(await self.transport.request("eth_chainId", []), 16)

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        """账户 pending sequence number"""
        result = await self.transport.request(
            "eth_getTransactionCount",
            [Web3.to_checksum_address(address), block],
        )
        return int(result, 16)

    async def call(self, to: str, data: str, block: str = "latest") -> str:
        return await self.transport.request(
            "eth_call",
            [{"to": Web3.to_checksum_address(to), "data": data}, block],
        )

    async def get_code(self, address: str) -> str:
        return await self.transport.request(
            "eth_getCode",
            [Web3.to_checksum_address(address), "latest"],
        )

    async def gas_price(self) -> str:
        return await self.transport.request("eth_gasPrice", [])

    async def get_entrypoint_nonce(self, sender: str, key: int = 0) -> int:
        """EntryPoint.getNonce(sender, key)，2D nonce: key << 64 | seq"""
        result = await self.call(self.entrypoint, build_get_nonce_calldata(sender, key))
        return decode_function_result(ENTRYPOINT_ABI, "getNonce", result)[0]

    async def aclose(self) -> None:
        await self.transport.aclose()
