import asyncio

from app.features.access.errors import StoreUnavailableError
from app.features.access.gate import GateState
from app.features.access.schemas import PermissionRule
from app.features.access.state import AccessRulesState
from tests.utils.auth import principal


LEADS_READ = [PermissionRule(feature="Leads", available_actions=["Read", "Write"], assistant=["Read"])]
LEADS_WRITE = [PermissionRule(feature="Leads", available_actions=["Read", "Write"], assistant=["Read", "Write"])]


async def test_gates_pending_until_first_fetch() -> None:
    state = AccessRulesState()
    assistant = principal("Assistant")
    assert state.gate(assistant, "Leads", "Read", lambda: "x").state is GateState.PENDING
    assert state.evaluate(assistant, "Leads", "Read") is False

    async def fetch():
        return LEADS_READ

    assert await state.refresh(fetch) is True
    assert state.gate(assistant, "Leads", "Read", lambda: "x").state is GateState.ALLOWED


async def test_failed_initial_fetch_denies_everything() -> None:
    state = AccessRulesState()

    async def fetch():
        raise StoreUnavailableError("connection refused")

    assert await state.refresh(fetch) is False
    assert state.rules == []
    assert state.error == "connection refused"
    assert state.evaluate(principal("Assistant"), "Leads", "Read") is False
    assert state.evaluate(principal("Admin"), "Leads", "Read") is True


async def test_failed_refresh_keeps_last_known_rules() -> None:
    state = AccessRulesState()

    async def ok():
        return LEADS_READ

    async def broken():
        raise StoreUnavailableError("timeout")

    await state.refresh(ok)
    await state.refresh(broken)
    assert state.rules == LEADS_READ


async def test_latest_issued_fetch_wins() -> None:
    state = AccessRulesState()
    release = asyncio.Event()

    async def slow_old():
        await release.wait()
        return LEADS_READ

    async def fast_new():
        return LEADS_WRITE

    old = asyncio.create_task(state.refresh(slow_old))
    await asyncio.sleep(0)
    assert await state.refresh(fast_new) is True
    release.set()
    assert await old is False

    assert state.rules == LEADS_WRITE
    assert state.evaluate(principal("Assistant"), "Leads", "Write") is True
