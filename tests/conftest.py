import pytest

from bikeshare.core.errors import RpcError, TransactionRejected
from bikeshare.core.models import Receipt
from bikeshare.core.orchestrator import TransactionOrchestrator
from bikeshare.core.session import SessionContext
from bikeshare.near.config import get_config
from bikeshare.observability import metrics

BIKE = "bike.test"
FT = "ft.test"

class FakeLedger:
    """In-memory stand-in for both contracts, recording every call."""

    def __init__(self, bikes=5, fee=30, reward=15):
        self.fee = fee
        self.reward = reward
        # per bike: (state, account) with state in available / in_use / inspecting
        self.bikes = [("available", None) for _ in range(bikes)]
        self.balances = {BIKE: 1000}
        self.storage = {BIKE: 1250}
        self.calls = []
        self.caller = ""
        self.fail_reads = set()
        self.fail_writes = set()
        self.break_reads_after_write = False
        self.hold = None

    # --- plumbing ---

    def _read(self, method, *args):
        self.calls.append((method, args))
        if method in self.fail_reads:
            raise RpcError(f"{method} unavailable")

    async def _write(self, method, *args):
        self.calls.append((method, args))
        if self.hold is not None:
            await self.hold.wait()
        if method in self.fail_writes:
            raise TransactionRejected(method, "Smart contract panicked")
        if self.break_reads_after_write:
            self.fail_reads.update({"is_available", "who_is_using", "who_is_inspecting", "num_of_bikes"})
        return Receipt(method=method, receiverId="", txHash=f"tx-{len(self.calls)}")

    def count(self, method):
        return sum(1 for m, _ in self.calls if m == method)

class FakeResources:
    contract_id = BIKE

    def __init__(self, ledger):
        self.ledger = ledger

    async def resource_count(self):
        self.ledger._read("num_of_bikes")
        return len(self.ledger.bikes)

    async def is_available(self, index):
        self.ledger._read("is_available", index)
        return self.ledger.bikes[index][0] == "available"

    async def current_holder(self, index):
        self.ledger._read("who_is_using", index)
        state, account = self.ledger.bikes[index]
        return account if state == "in_use" else None

    async def current_inspector(self, index):
        self.ledger._read("who_is_inspecting", index)
        state, account = self.ledger.bikes[index]
        return account if state == "inspecting" else None

    async def fee_amount(self):
        self.ledger._read("amount_to_use_bike")
        return self.ledger.fee

    async def reward_amount(self):
        self.ledger._read("amount_reward_for_inspections")
        return self.ledger.reward

    async def inspect(self, index):
        receipt = await self.ledger._write("inspect", index)
        if self.ledger.bikes[index][0] == "available":
            self.ledger.bikes[index] = ("inspecting", self.ledger.caller)
        return receipt

    async def return_resource(self, index):
        receipt = await self.ledger._write("return_resource", index)
        self.ledger.bikes[index] = ("available", None)
        return receipt

    async def transfer_to_new_user(self, new_user_id):
        receipt = await self.ledger._write("transfer_to_new_user", new_user_id)
        self.ledger.balances[BIKE] -= self.ledger.fee
        self.ledger.balances[new_user_id] = self.ledger.balances.get(new_user_id, 0) + self.ledger.fee
        return receipt

class FakeTokens:
    contract_id = FT

    def __init__(self, ledger):
        self.ledger = ledger

    async def balance_of(self, account_id):
        self.ledger._read("ft_balance_of", account_id)
        return self.ledger.balances.get(account_id, 0)

    async def storage_balance_of(self, account_id):
        self.ledger._read("storage_balance_of", account_id)
        return self.ledger.storage.get(account_id)

    async def register_storage(self):
        receipt = await self.ledger._write("register_storage")
        self.ledger.storage[self.ledger.caller] = 1250
        return receipt

    async def unregister_storage(self, force=False):
        receipt = await self.ledger._write("unregister_storage", force)
        self.ledger.storage.pop(self.ledger.caller, None)
        self.ledger.balances.pop(self.ledger.caller, None)
        return receipt

    async def transfer(self, receiver_id, amount):
        receipt = await self.ledger._write("transfer", receiver_id, amount)
        self.ledger.balances[self.ledger.caller] -= amount
        self.ledger.balances[receiver_id] = self.ledger.balances.get(receiver_id, 0) + amount
        return receipt

    async def transfer_and_invoke(self, receiver_id, amount, payload):
        receipt = await self.ledger._write("transfer_and_invoke", receiver_id, amount, payload)
        caller = self.ledger.caller
        self.ledger.balances[caller] -= amount
        self.ledger.balances[receiver_id] = self.ledger.balances.get(receiver_id, 0) + amount
        index = int(payload)
        if self.ledger.bikes[index][0] == "available":
            self.ledger.bikes[index] = ("in_use", caller)
        return receipt

class FakeWallet:
    def __init__(self, ledger, account_id=""):
        self.ledger = ledger
        self.ledger.caller = account_id

    def is_signed_in(self):
        return bool(self.ledger.caller)

    def get_account_id(self):
        return self.ledger.caller

    def request_sign_in(self, contract_id, success_url=None):
        return f"https://wallet.test/login/?contract_id={contract_id}"

    def complete_sign_in(self, account_id):
        self.ledger.caller = account_id

    def sign_out(self):
        self.ledger.caller = ""

    async def aclose(self):
        return None

class FakeRpc:
    async def aclose(self):
        return None

def make_context(ledger, account_id="alice.test"):
    return SessionContext(
        network=get_config("testnet"),
        rpc=FakeRpc(),
        wallet=FakeWallet(ledger, account_id),
        resources=FakeResources(ledger),
        tokens=FakeTokens(ledger),
    )

@pytest.fixture
def ledger():
    return FakeLedger()

@pytest.fixture
def notices():
    return []

@pytest.fixture
def make_orchestrator(notices):
    def _make(ledger, account_id="alice.test"):
        return TransactionOrchestrator(make_context(ledger, account_id), notifier=notices.append)
    return _make

@pytest.fixture(autouse=True)
def clean_metrics():
    metrics.reset()
    yield
    metrics.reset()

@pytest.fixture
def make_ctx():
    return make_context
