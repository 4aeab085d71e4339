"""
Resolution of the identity that submits the execution transaction.

The executor contract keeps an allow-list of callers. In production the
preferred signer must be on it. On test networks the owner of the executor
may be impersonated instead; that capability lives in its own resolver so
production code never carries the branch.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3

from ..chain import Chain
from ..config import Network, Settings
from .exceptions import NotAuthorized, StateUnavailable


@dataclass(frozen=True)
class AuthorizedSigner:
    address: str
    account: Optional[LocalAccount] = None   # None -> node-managed (unlocked / impersonated)
    impersonated: bool = False


def preferred_signer(w3: Web3, settings: Settings) -> AuthorizedSigner:
    """PRIVATE_KEY when configured, else the node's first account."""
    if settings.PRIVATE_KEY:
        acct = Account.from_key(settings.PRIVATE_KEY)
        return AuthorizedSigner(address=acct.address, account=acct)
    accounts = w3.eth.accounts
    if not accounts:
        raise NotAuthorized("No PRIVATE_KEY configured and the node exposes no accounts")
    return AuthorizedSigner(address=Web3.to_checksum_address(accounts[0]))


class SignerResolver(ABC):

    @abstractmethod
    def resolve(self, preferred: AuthorizedSigner) -> AuthorizedSigner:
        ...


class AllowListSignerResolver(SignerResolver):
    """Only callers whitelisted on AutomationExecutor.callers() may execute."""

    def __init__(self, chain: Chain):
        self.chain = chain
        self._logger = logging.getLogger(self.__class__.__name__)

    def is_caller(self, address: str) -> bool:
        executor = self.chain.automation_executor()
        try:
            return bool(executor.functions.callers(Web3.to_checksum_address(address)).call())
        except Exception as exc:
            raise StateUnavailable(f"Executor allow-list read failed: {exc}") from exc

    def resolve(self, preferred: AuthorizedSigner) -> AuthorizedSigner:
        if self.is_caller(preferred.address):
            return preferred
        raise NotAuthorized(f"{preferred.address} is not an allowed executor caller")


class ImpersonatingSignerResolver(AllowListSignerResolver):
    """
    Test networks only: when the preferred signer is not whitelisted, act as
    the executor owner through `hardhat_impersonateAccount` and give it just
    enough ETH to pay gas.
    """

    def __init__(self, chain: Chain, network: Network, funding_wei: int = 10**18):
        if network.is_production:
            raise NotAuthorized(f"Impersonation is not available on {network.value}")
        super().__init__(chain)
        self.network = network
        self.funding_wei = int(funding_wei)

    def _rpc(self, method: str, params: list):
        try:
            resp = self.chain.w3.provider.make_request(method, params)
        except Exception as exc:
            raise NotAuthorized(f"{method} failed on {self.network.value}: {exc}") from exc
        if isinstance(resp, dict) and resp.get("error"):
            raise NotAuthorized(f"{method} unsupported on {self.network.value}: {resp['error']}")
        return resp

    def resolve(self, preferred: AuthorizedSigner) -> AuthorizedSigner:
        if self.network.is_production:
            raise NotAuthorized(f"Impersonation is not available on {self.network.value}")
        if self.is_caller(preferred.address):
            return preferred

        owner = Web3.to_checksum_address(self.chain.automation_executor().functions.owner().call())
        self._logger.warning("%s is not an executor caller, impersonating owner %s", preferred.address, owner)
        self._rpc("hardhat_impersonateAccount", [owner])

        balance = int(self.chain.w3.eth.get_balance(owner))
        if balance < self.funding_wei:
            self._rpc("hardhat_setBalance", [owner, hex(self.funding_wei)])
        return AuthorizedSigner(address=owner, impersonated=True)


class CallerAuthorizer:

    def __init__(self, resolver: SignerResolver):
        self.resolver = resolver

    def resolve(self, preferred: AuthorizedSigner) -> AuthorizedSigner:
        return self.resolver.resolve(preferred)


def build_signer_resolver(chain: Chain, settings: Settings) -> SignerResolver:
    if settings.NETWORK.is_production:
        return AllowListSignerResolver(chain)
    return ImpersonatingSignerResolver(chain, settings.NETWORK, settings.IMPERSONATION_FUNDING_WEI)
