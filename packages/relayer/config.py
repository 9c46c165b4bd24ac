"""
Relayer — 环境变量 + 常量
"""
import os
from dotenv import load_dotenv

load_dotenv()

# 区块链（读链）
QUERY_RPC_URL = os.getenv("QUERY_RPC_URL", "")
CHAIN_ID = int(os.getenv("CHAIN_ID", "84532"))  # Base Sepolia

# ERC-4337 / ERC-7677
BUNDLER_RPC_URL = os.getenv("BUNDLER_RPC_URL", "")
PAYMASTER_RPC_URL = os.getenv("PAYMASTER_RPC_URL", "")
ENTRYPOINT_ADDRESS = os.getenv(
    "ENTRYPOINT_ADDRESS",
    "0x0000000071727De22E5E9d8BAf0edAc6f37da032",
)
SIMPLE_ACCOUNT_FACTORY = os.getenv(
    "SIMPLE_ACCOUNT_FACTORY",
    "0x91E60e0613810449d098b0b5Ec8b51A0FE8c8985",
)
ACCOUNT_SALT = int(os.getenv("ACCOUNT_SALT", "0"))

# Relayer owner key（sponsored account 的唯一 owner）
RELAYER_PRIVATE_KEY = os.getenv("RELAYER_PRIVATE_KEY", "")

# 目标合约 ABI（JSON 文件，可选）
CONTRACT_ABI_PATH = os.getenv("CONTRACT_ABI_PATH", "")

# Redis（nonce 计数器）
REDIS_URL = os.getenv("REDIS_URL", "")
NONCE_KEY_PREFIX = os.getenv("NONCE_KEY_PREFIX", "relayer_nonce:")

# Transport
RPC_TIMEOUT = float(os.getenv("RPC_TIMEOUT", "3.0"))  # 秒
PAYMASTER_TIMEOUT = float(os.getenv("PAYMASTER_TIMEOUT", "2.0"))
TRANSPORT_RETRY_COUNT = int(os.getenv("TRANSPORT_RETRY_COUNT", "1"))
TRANSPORT_RETRY_DELAY = float(os.getenv("TRANSPORT_RETRY_DELAY", "0.05"))

# Receipt 轮询
RECEIPT_POLLING_INTERVAL = float(os.getenv("RECEIPT_POLLING_INTERVAL", "0.025"))
RECEIPT_TIMEOUT = float(os.getenv("RECEIPT_TIMEOUT", "3.0"))

# 提交重试（固定间隔）
SUBMIT_MAX_RETRIES = int(os.getenv("SUBMIT_MAX_RETRIES", "1"))
SUBMIT_RETRY_DELAY = float(os.getenv("SUBMIT_RETRY_DELAY", "0.1"))

# 服务
PORT = int(os.getenv("PORT", 8002))
RELAYER_API_KEY = os.getenv("RELAYER_API_KEY", "")
