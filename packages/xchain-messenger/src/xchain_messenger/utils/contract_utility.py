import json
from pathlib import Path

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.middleware import SignAndSendRawMiddlewareBuilder

CONTRACTS_DIR = Path(__file__).resolve().parent.parent / "contracts"


class ContractUtility:
    """
    Utility for contract interaction and ABI loading.

    Can be used in three modes:
    1. Signing mode: rpc_url and secret, transactions are signed locally
    2. Read mode: rpc_url only, for queries and for building transactions
       that the app daemon signs
    3. ABI-only mode: no arguments, just loads ABIs
    """

    def __init__(self, rpc_url: str = "", secret: str = "", request_timeout: int = 30):
        """
        Initialize the ContractUtility.

        Args:
            rpc_url: HTTP RPC endpoint (optional for ABI-only mode)
            secret: Private key for transactions (optional)
            request_timeout: HTTP request timeout in seconds
        """
        self.rpc_url = rpc_url or None
        self.account: LocalAccount | None = None

        if rpc_url:
            self.w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout}))
            if secret:
                self.setup_web3_middleware(secret)
        else:
            self.w3 = None

    def setup_web3_middleware(self, secret: str) -> Web3:
        if not secret:
            raise ValueError("Missing private key for transaction signing")

        account: LocalAccount = Account.from_key(secret)
        self.w3.middleware_onion.add(SignAndSendRawMiddlewareBuilder.build(account))
        self.w3.eth.default_account = account.address
        self.account = account
        return self.w3

    def get_contract(self, contract_name: str, address: str):
        """Contract instance bound to this utility's connection."""
        if self.w3 is None:
            raise ValueError("ContractUtility was created without an RPC URL")
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(address),
            abi=self.get_contract_abi(contract_name),
        )

    @staticmethod
    def get_contract_abi(contract_name: str) -> list:
        """Fetches ABI of the given contract from the contracts folder"""
        contract_path = CONTRACTS_DIR / f"{contract_name}.json"

        with contract_path.open() as file:
            contract_data = json.load(file)

        return contract_data["abi"]
