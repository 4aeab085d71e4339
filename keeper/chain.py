from web3 import Web3
from web3.contract import Contract

from .config import Settings

# ABIs mínimos (fragmentos): somente o que é usado

ABI_AUTOMATION_BOT = [
  {"name":"TriggerAdded","type":"event","anonymous":False,"inputs":[
    {"indexed":True,"name":"triggerId","type":"uint256"},
    {"indexed":True,"name":"commandAddress","type":"address"},
    {"indexed":True,"name":"cdpId","type":"uint256"},
    {"indexed":False,"name":"triggerData","type":"bytes"}]},
  {"name":"TriggerExecuted","type":"event","anonymous":False,"inputs":[
    {"indexed":True,"name":"triggerId","type":"uint256"},
    {"indexed":True,"name":"cdpId","type":"uint256"},
    {"indexed":False,"name":"executionData","type":"bytes"}]},
]

ABI_AUTOMATION_EXECUTOR = [
  {"name":"execute","outputs":[],"inputs":[
    {"type":"bytes","name":"executionData"},
    {"type":"uint256","name":"cdpId"},
    {"type":"bytes","name":"triggerData"},
    {"type":"address","name":"commandAddress"},
    {"type":"uint256","name":"triggerId"},
    {"type":"uint256","name":"daiCoverage"},
    {"type":"uint256","name":"minerBribe"},
    {"type":"int256","name":"gasRefund"}],
   "stateMutability":"nonpayable","type":"function"},
  {"name":"callers","outputs":[{"type":"bool"}],"inputs":[{"type":"address"}],"stateMutability":"view","type":"function"},
  {"name":"owner","outputs":[{"type":"address"}],"inputs":[],"stateMutability":"view","type":"function"},
]

ABI_MCD_VIEW = [
  {"name":"getVaultInfo","outputs":[{"type":"uint256"},{"type":"uint256"}],"inputs":[{"type":"uint256"}],"stateMutability":"view","type":"function"},
  {"name":"getRatio","outputs":[{"type":"uint256"}],"inputs":[{"type":"uint256"},{"type":"bool"}],"stateMutability":"view","type":"function"},
  {"name":"getPrice","outputs":[{"type":"uint256"}],"inputs":[{"type":"bytes32"}],"stateMutability":"view","type":"function"},
]

ABI_CDP_MANAGER = [
  {"name":"ilks","outputs":[{"type":"bytes32"}],"inputs":[{"type":"uint256"}],"stateMutability":"view","type":"function"},
  {"name":"owns","outputs":[{"type":"address"}],"inputs":[{"type":"uint256"}],"stateMutability":"view","type":"function"},
]

ABI_ILK_REGISTRY = [
  {"name":"gem","outputs":[{"type":"address"}],"inputs":[{"type":"bytes32"}],"stateMutability":"view","type":"function"},
  {"name":"join","outputs":[{"type":"address"}],"inputs":[{"type":"bytes32"}],"stateMutability":"view","type":"function"},
  {"name":"dec","outputs":[{"type":"uint256"}],"inputs":[{"type":"bytes32"}],"stateMutability":"view","type":"function"},
]

ABI_SPOTTER = [
  {"name":"ilks","outputs":[{"type":"address","name":"pip"},{"type":"uint256","name":"mat"}],"inputs":[{"type":"bytes32"}],"stateMutability":"view","type":"function"},
]

ABI_DS_PROXY = [
  {"name":"owner","outputs":[{"type":"address"}],"inputs":[],"stateMutability":"view","type":"function"},
]

_EXCHANGE_DATA = {"type":"tuple","name":"exchangeData","components":[
  {"type":"address","name":"fromTokenAddress"},
  {"type":"address","name":"toTokenAddress"},
  {"type":"uint256","name":"fromTokenAmount"},
  {"type":"uint256","name":"toTokenAmount"},
  {"type":"uint256","name":"minToTokenAmount"},
  {"type":"address","name":"exchangeAddress"},
  {"type":"bytes","name":"_exchangeCalldata"}]}

_CDP_DATA = {"type":"tuple","name":"cdpData","components":[
  {"type":"address","name":"gemJoin"},
  {"type":"address","name":"fundsReceiver"},
  {"type":"uint256","name":"cdpId"},
  {"type":"bytes32","name":"ilk"},
  {"type":"uint256","name":"requiredDebt"},
  {"type":"uint256","name":"borrowCollateral"},
  {"type":"uint256","name":"withdrawCollateral"},
  {"type":"uint256","name":"withdrawDai"},
  {"type":"uint256","name":"depositDai"},
  {"type":"uint256","name":"depositCollateral"},
  {"type":"bool","name":"skipFL"},
  {"type":"string","name":"methodName"}]}

_ADDRESS_REGISTRY = {"type":"tuple","name":"addressRegistry","components":[
  {"type":"address","name":"jug"},
  {"type":"address","name":"manager"},
  {"type":"address","name":"multiplyProxyActions"},
  {"type":"address","name":"lender"},
  {"type":"address","name":"feeRecepient"},
  {"type":"address","name":"exchange"}]}

ABI_MULTIPLY_PROXY_ACTIONS = [
  {"name":name,"outputs":[],"inputs":[_EXCHANGE_DATA,_CDP_DATA,_ADDRESS_REGISTRY],"stateMutability":"payable","type":"function"}
  for name in ("closeVaultExitCollateral","closeVaultExitDai","increaseMultiple","decreaseMultiple")
]

ABI_ONE_INCH_ROUTER = [
  {"name":"unoswap","outputs":[{"type":"uint256","name":"returnAmount"}],"inputs":[
    {"type":"address","name":"srcToken"},
    {"type":"uint256","name":"amount"},
    {"type":"uint256","name":"minReturn"},
    {"type":"bytes32[]","name":"pools"}],
   "stateMutability":"payable","type":"function"},
]


def make_web3(settings: Settings) -> Web3:
    return Web3(Web3.HTTPProvider(
        settings.RPC_URL,
        request_kwargs={"timeout": settings.HTTP_TIMEOUT_SEC},
    ))


class Chain:
    """
    Hands out contract objects bound to the configured deployment.
    """

    def __init__(self, w3: Web3, settings: Settings):
        self.w3 = w3
        self.settings = settings

    def _contract(self, addr: str, abi: list) -> Contract:
        return self.w3.eth.contract(address=Web3.to_checksum_address(addr), abi=abi)

    def automation_bot(self) -> Contract:
        return self._contract(self.settings.AUTOMATION_BOT, ABI_AUTOMATION_BOT)

    def automation_executor(self) -> Contract:
        return self._contract(self.settings.AUTOMATION_EXECUTOR, ABI_AUTOMATION_EXECUTOR)

    def mcd_view(self) -> Contract:
        return self._contract(self.settings.AUTOMATION_MCD_VIEW, ABI_MCD_VIEW)

    def cdp_manager(self) -> Contract:
        return self._contract(self.settings.CDP_MANAGER, ABI_CDP_MANAGER)

    def ilk_registry(self) -> Contract:
        return self._contract(self.settings.ILK_REGISTRY, ABI_ILK_REGISTRY)

    def spotter(self) -> Contract:
        return self._contract(self.settings.MCD_SPOT, ABI_SPOTTER)

    def ds_proxy(self, addr: str) -> Contract:
        return self._contract(addr, ABI_DS_PROXY)

    def multiply_proxy_actions(self) -> Contract:
        return self._contract(self.settings.MULTIPLY_PROXY_ACTIONS, ABI_MULTIPLY_PROXY_ACTIONS)

    def one_inch_router(self) -> Contract:
        return self._contract(self.settings.ONE_INCH_V4_ROUTER, ABI_ONE_INCH_ROUTER)
