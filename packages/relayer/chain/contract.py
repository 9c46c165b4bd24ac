"""
目标合约 ABI — relay 请求默认调用的游戏合约
设置 CONTRACT_ABI_PATH 时从 JSON 文件加载完整 ABI
"""
import json
import logging
from pathlib import Path

from config import CONTRACT_ABI_PATH

logger = logging.getLogger("relayer.chain.contract")

# 最小 ABI: relayer 代用户执行的写操作 + 常用读操作
DEFAULT_CONTRACT_ABI = [
    {
        "inputs": [
            {"name": "sender", "type": "address"},
            {"name": "name", "type": "string"},
            {"name": "country", "type": "uint8"},
        ],
        "name": "createTeamRelayer",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"name": "teamId", "type": "uint256"}],
        "name": "getTeam",
        "outputs": [],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getActiveGames",
        "outputs": [{"name": "", "type": "uint256[]"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getActiveGameCount",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]


def load_contract_abi(path: str | None = None) -> list[dict]:
    path = path if path is not None else CONTRACT_ABI_PATH
    if not path:
        return DEFAULT_CONTRACT_ABI
    raw = json.loads(Path(path).read_text())
    # 兼容 Hardhat / Foundry artifact（{"abi": [...]}）
    abi = raw["abi"] if isinstance(raw, dict) else raw
    logger.info(f"Loaded contract ABI from {path} ({len(abi)} entries)")
    return abi


CONTRACT_ABI = load_contract_abi()
