import asyncio

import pytest

from bikeshare.core import state_machine as sm
from bikeshare.core.errors import ActionRejected, InsufficientBalance, NotRegistered, UnknownResource
from bikeshare.core.models import RegistrationStatus
from bikeshare.observability import metrics


@pytest.fixture
def registered(ledger):
    ledger.storage["alice.test"] = 1250
    ledger.balances["alice.test"] = 50
    return ledger


def _codes(notices):
    return [n.code for n in notices]


def test_start_signed_out_enters_sign_in(ledger, make_orchestrator):
    orch = make_orchestrator(ledger, account_id="")
    assert asyncio.run(orch.start()) is True
    assert orch.phase == sm.SIGN_IN
    assert orch.registration is RegistrationStatus.UNKNOWN
    assert len(orch.snapshot) == 5


def test_start_failure_keeps_empty_state(ledger, make_orchestrator, notices):
    ledger.fail_reads.add("amount_to_use_bike")
    orch = make_orchestrator(ledger)
    assert asyncio.run(orch.start()) is False
    assert len(orch.snapshot) == 0
    assert _codes(notices) == ["snapshot_unavailable"]


def test_scenario_a_register_from_registry(ledger, make_orchestrator):
    orch = make_orchestrator(ledger)

    async def scenario():
        await orch.start()
        assert orch.machine.history == [sm.HOME, sm.REGISTRY]
        return await orch.register()

    outcome = asyncio.run(scenario())

    assert outcome.ok and outcome.settled
    assert orch.phase == sm.HOME
    assert orch.registration is RegistrationStatus.REGISTERED
    assert orch.balance.amount == ledger.fee
    assert asyncio.run(orch.gate.check_registration("alice.test")) is RegistrationStatus.REGISTERED


def test_register_failed_deposit_stays_in_registry(ledger, make_orchestrator, notices):
    ledger.fail_writes.add("register_storage")
    orch = make_orchestrator(ledger)

    async def scenario():
        await orch.start()
        return await orch.register()

    outcome = asyncio.run(scenario())
    assert not outcome.ok
    assert orch.phase == sm.REGISTRY
    assert ledger.count("transfer_to_new_user") == 0
    assert "transaction_rejected" in _codes(notices)


def test_register_seed_failure_warns_and_goes_home(ledger, make_orchestrator, notices):
    ledger.fail_writes.add("transfer_to_new_user")
    orch = make_orchestrator(ledger)

    async def scenario():
        await orch.start()
        return await orch.register()

    outcome = asyncio.run(scenario())
    assert outcome.ok
    assert not outcome.receipt.seeded
    assert orch.phase == sm.HOME
    assert orch.registration is RegistrationStatus.REGISTERED
    assert [(n.level, n.code) for n in notices] == [("warning", "registration_incomplete")]


def test_register_refused_outside_registry(registered, make_orchestrator):
    orch = make_orchestrator(registered)

    async def scenario():
        await orch.start()
        await orch.register()

    with pytest.raises(ActionRejected):
        asyncio.run(scenario())
    assert registered.count("register_storage") == 0


def test_scenario_b_insufficient_balance_issues_no_write(registered, make_orchestrator, notices):
    registered.balances["alice.test"] = 25
    orch = make_orchestrator(registered)

    async def scenario():
        await orch.start()
        await orch.reserve(2)

    with pytest.raises(InsufficientBalance) as exc:
        asyncio.run(scenario())

    assert exc.value.required == 30 and exc.value.balance == 25
    assert registered.count("transfer_and_invoke") == 0
    assert orch.snapshot[2].available is True
    assert orch.phase == sm.HOME
    assert not orch.guard.busy
    assert _codes(notices) == ["insufficient_balance"]
    assert metrics.get_metrics_snapshot()["actions"]["reserve"]["rejected"] == 1


def test_scenario_c_reserve_pays_fee_with_index_payload(registered, make_orchestrator):
    orch = make_orchestrator(registered)

    async def scenario():
        await orch.start()
        return await orch.reserve(0)

    outcome = asyncio.run(scenario())

    assert outcome.ok and outcome.settled
    assert ("transfer_and_invoke", ("bike.test", 30, "0")) in registered.calls
    # ft_balance_of (pre-check) must precede the write
    methods = [m for m, _ in registered.calls]
    assert methods.index("ft_balance_of") < methods.index("transfer_and_invoke")
    assert orch.snapshot[0].heldBy == "alice.test"
    assert orch.snapshot[0].inUse and not orch.snapshot[0].available
    assert orch.phase == sm.HOME
    assert orch.machine.history[-2:] == [sm.TRANSACTION, sm.HOME]


def test_reserve_rejected_write_still_settles(registered, make_orchestrator, notices):
    registered.fail_writes.add("transfer_and_invoke")
    orch = make_orchestrator(registered)

    async def scenario():
        await orch.start()
        before = registered.count("is_available")
        outcome = await orch.reserve(0)
        return before, outcome

    avail_calls, outcome = asyncio.run(scenario())

    assert not outcome.ok
    assert registered.count("is_available") == avail_calls + 5
    assert orch.snapshot[0].available
    assert orch.phase == sm.HOME
    assert _codes(notices) == ["transaction_rejected"]


def test_reserve_requires_registration(ledger, make_orchestrator, notices):
    ledger.balances["alice.test"] = 100
    orch = make_orchestrator(ledger)

    async def scenario():
        await orch.start()
        # simulate a session that left REGISTRY without a deposit on record
        orch.machine.transition(sm.HOME)
        await orch.reserve(1)

    with pytest.raises(NotRegistered):
        asyncio.run(scenario())
    assert ledger.count("transfer_and_invoke") == 0


def test_unknown_index_is_refused(registered, make_orchestrator):
    orch = make_orchestrator(registered)

    async def scenario():
        await orch.start()
        await orch.inspect(9)

    with pytest.raises(UnknownResource):
        asyncio.run(scenario())


def test_inspect_then_return_refreshes_only_that_index(registered, make_orchestrator):
    orch = make_orchestrator(registered)
    published = []
    orch.subscribe(published.append)

    async def scenario():
        await orch.start()
        start_snapshot = orch.snapshot
        await orch.inspect(1)
        after_inspect = orch.snapshot
        await orch.return_resource(1)
        return start_snapshot, after_inspect

    start_snapshot, after_inspect = asyncio.run(scenario())

    assert after_inspect is not start_snapshot
    assert after_inspect[1].inspecting and not after_inspect[1].available
    assert start_snapshot[1].available
    assert orch.snapshot[1].available
    assert registered.count("num_of_bikes") == 1
    assert len(published) == 3


def test_scenario_d_failed_refresh_keeps_prior_record(registered, make_orchestrator, notices):
    orch = make_orchestrator(registered)

    async def scenario():
        await orch.start()
        prior = orch.snapshot
        registered.break_reads_after_write = True
        outcome = await orch.inspect(1)
        return prior, outcome

    prior, outcome = asyncio.run(scenario())

    assert registered.count("inspect") == 1
    assert outcome.ok and not outcome.settled
    assert orch.snapshot is prior
    assert orch.snapshot[1].available is True
    assert orch.phase == sm.HOME
    assert _codes(notices) == ["snapshot_unavailable"]


def test_second_action_while_in_flight_is_refused(registered, make_orchestrator, notices):
    orch = make_orchestrator(registered)

    async def scenario():
        await orch.start()
        registered.hold = asyncio.Event()
        first = asyncio.create_task(orch.inspect(1))
        for _ in range(100):
            if orch.phase == sm.TRANSACTION:
                break
            await asyncio.sleep(0)
        assert orch.phase == sm.TRANSACTION

        with pytest.raises(ActionRejected):
            await orch.return_resource(1)
        with pytest.raises(ActionRejected):
            await orch.reserve(2)
        with pytest.raises(ActionRejected):
            await orch.check_balance()
        with pytest.raises(ActionRejected):
            await orch.reload()

        registered.hold.set()
        return await first

    outcome = asyncio.run(scenario())

    assert outcome.ok
    assert registered.count("inspect") == 1
    assert registered.count("return_resource") == 0
    assert registered.count("transfer_and_invoke") == 0
    assert orch.phase == sm.HOME
    assert not orch.guard.busy


def test_check_balance_overwrites_last_result(registered, make_orchestrator):
    orch = make_orchestrator(registered)

    async def scenario():
        await orch.start()
        await orch.check_balance()
        first = orch.balance
        await orch.check_balance("bike.test")
        return first

    first = asyncio.run(scenario())
    assert first.accountId == "alice.test" and first.amount == 50
    assert orch.balance.accountId == "bike.test" and orch.balance.amount == 1000
    assert orch.phase == sm.HOME


def test_check_balance_read_failure_returns_none(registered, make_orchestrator, notices):
    orch = make_orchestrator(registered)

    async def scenario():
        await orch.start()
        registered.fail_reads.add("ft_balance_of")
        return await orch.check_balance()

    assert asyncio.run(scenario()) is None
    assert orch.balance is None
    assert orch.phase == sm.HOME
    assert _codes(notices) == ["snapshot_unavailable"]


def test_transfer_defaults_to_fee_and_refreshes_own_balance(registered, make_orchestrator):
    orch = make_orchestrator(registered)

    async def scenario():
        await orch.start()
        return await orch.transfer("bob.test")

    outcome = asyncio.run(scenario())
    assert outcome.ok
    assert ("transfer", ("bob.test", 30)) in registered.calls
    assert orch.balance.amount == 20


def test_transfer_requires_receiver(registered, make_orchestrator):
    orch = make_orchestrator(registered)
    with pytest.raises(ActionRejected):
        asyncio.run(orch.transfer(""))


def test_unregister_marks_identity_unregistered_without_registry(registered, make_orchestrator):
    orch = make_orchestrator(registered)

    async def scenario():
        await orch.start()
        outcome = await orch.unregister()
        with pytest.raises(NotRegistered):
            await orch.inspect(0)
        return outcome

    outcome = asyncio.run(scenario())
    assert outcome.ok
    assert ("unregister_storage", (True,)) in registered.calls
    assert orch.registration is RegistrationStatus.UNREGISTERED
    assert orch.phase == sm.HOME


def test_sign_out_then_sign_in_reloads_from_scratch(registered, make_orchestrator):
    orch = make_orchestrator(registered)

    async def scenario():
        await orch.start()
        await orch.sign_out()
        signed_out = orch.phase
        await orch.complete_sign_in("alice.test")
        return signed_out

    assert asyncio.run(scenario()) == sm.SIGN_IN
    assert orch.phase == sm.HOME
    assert orch.identity == "alice.test"
    assert orch.request_sign_in().startswith("https://wallet.test/login/")


def test_sign_out_with_failed_reload_still_enters_sign_in(registered, make_orchestrator, notices):
    orch = make_orchestrator(registered)

    async def scenario():
        await orch.start()
        registered.fail_reads.add("amount_to_use_bike")
        loaded = await orch.sign_out()
        registered.fail_reads.clear()
        with pytest.raises(ActionRejected):
            await orch.inspect(0)
        return loaded

    assert asyncio.run(scenario()) is False
    assert orch.phase == sm.SIGN_IN
    assert orch.identity == ""
    assert orch.registration is RegistrationStatus.UNKNOWN
    assert len(orch.snapshot) == 5
    assert registered.count("inspect") == 0
    assert _codes(notices)[0] == "snapshot_unavailable"


def test_sign_in_with_failed_reload_follows_new_identity(ledger, make_orchestrator):
    orch = make_orchestrator(ledger, account_id="")

    async def scenario():
        await orch.start()
        ledger.fail_reads.add("num_of_bikes")
        return await orch.complete_sign_in("bob.test")

    assert asyncio.run(scenario()) is False
    assert orch.identity == "bob.test"
    assert orch.phase == sm.REGISTRY
    assert orch.registration is RegistrationStatus.UNKNOWN
    assert orch.balance is None


def test_reload_failure_keeps_identity_and_phase(registered, make_orchestrator):
    orch = make_orchestrator(registered)

    async def scenario():
        await orch.start()
        registered.fail_reads.add("amount_to_use_bike")
        return await orch.reload()

    assert asyncio.run(scenario()) is False
    assert orch.phase == sm.HOME
    assert orch.identity == "alice.test"
    assert orch.registration is RegistrationStatus.REGISTERED


def test_metrics_count_outcomes(registered, make_orchestrator):
    registered.fail_writes.add("return_resource")
    orch = make_orchestrator(registered)

    async def scenario():
        await orch.start()
        await orch.inspect(0)
        await orch.return_resource(0)

    asyncio.run(scenario())
    actions = metrics.get_metrics_snapshot()["actions"]
    assert actions["inspect"]["success"] == 1
    assert actions["return"]["failure"] == 1
    assert actions["return"]["success_rate"] == 0.0
