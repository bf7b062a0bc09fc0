"""External integration adapters."""

from .solana_rpc import AccountInfo, ProgramAccount, SolanaRPCClient

__all__ = [
    "AccountInfo",
    "ProgramAccount",
    "SolanaRPCClient",
]
