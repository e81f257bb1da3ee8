from types import SimpleNamespace
from uuid import uuid4

import httpx
import pytest

from src.guests.dtos import (
    DispatchOutcome,
    MessageType,
    QRCodeStatus,
    QRCodeType,
    RSVPResponse,
)
from src.guests.errors import EventNotFoundError
from src.guests.features.qr_codes.write_model import SqlQRCodeEngine
from src.guests.features.request_qr_dispatch.write_model import DECLINED, NO_RESPONSE
from src.guests.features.submit_rsvp.write_model import SqlRSVPWorkflow
from src.notifications.resend_dispatcher import ResendNotificationDispatcher


@pytest.fixture
async def event_id(seed):
    return await seed.event("Gala Night")


@pytest.fixture
def engine(session_maker):
    return SqlQRCodeEngine(session_maker)


@pytest.fixture
def workflow(session_maker, engine, notification_dispatcher):
    return SqlRSVPWorkflow(
        session_maker=session_maker,
        qr_code_engine=engine,
        notification_dispatcher=notification_dispatcher,
        dispatch_interval=0,
    )


@pytest.mark.asyncio
async def test_dispatch_sends_codes_to_attending_guests_only(
    workflow, engine, seed, event_id, notification_dispatcher
):
    coming = await seed.guest("ann@example.com", "Ann", "Adams", event_id=event_id)
    declined = await seed.guest("bill@example.com", "Bill", "Brown", event_id=event_id)
    silent = await seed.guest("cleo@example.com", "Cleo", "Clark", event_id=event_id)
    await seed.invitation(coming, event_id, response=RSVPResponse.COMING)
    await seed.invitation(declined, event_id, response=RSVPResponse.NOT_COMING)
    await seed.invitation(silent, event_id)

    results = await workflow.request_qr_dispatch(event_id)

    by_guest = {result.guest_id: result for result in results}
    assert [result.guest_name for result in results] == ["Ann Adams", "Bill Brown", "Cleo Clark"]
    assert by_guest[coming].outcome == DispatchOutcome.SUCCESS
    assert by_guest[coming].qr_codes_issued == 1
    assert by_guest[declined].outcome == DispatchOutcome.SKIPPED
    assert by_guest[declined].reason == DECLINED
    assert by_guest[silent].outcome == DispatchOutcome.SKIPPED
    assert by_guest[silent].reason == NO_RESPONSE

    assert await engine.history(declined, event_id) == []
    assert await engine.history(silent, event_id) == []
    [qr_code] = await engine.history(coming, event_id)
    assert qr_code.status == QRCodeStatus.SENT
    assert qr_code.code == by_guest[coming].code

    [message] = notification_dispatcher.delivered
    assert message["message_type"] == MessageType.QR_CODE
    assert message["payload"]["to_address"] == "ann@example.com"
    assert message["payload"]["qr_code"] == qr_code.code
    assert message["payload"]["event_name"] == "Gala Night"


@pytest.mark.asyncio
async def test_dispatch_skips_member_without_invitation(workflow, seed, event_id):
    await seed.guest("ann@example.com", event_id=event_id)

    [result] = await workflow.request_qr_dispatch(event_id)

    assert result.outcome == DispatchOutcome.SKIPPED
    assert result.reason == NO_RESPONSE


@pytest.mark.asyncio
async def test_dispatch_reuses_sent_and_used_codes(workflow, engine, seed, event_id):
    sent_guest = await seed.guest("ann@example.com", "Ann", "Adams", event_id=event_id)
    used_guest = await seed.guest("bob@example.com", "Bob", "Baker", event_id=event_id)
    for guest_id in (sent_guest, used_guest):
        await seed.invitation(guest_id, event_id, response=RSVPResponse.COMING)
    sent_code = await engine.issue(sent_guest, event_id, QRCodeType.REGULAR)
    await engine.mark_dispatched(sent_guest, event_id)
    used_code = await engine.issue(used_guest, event_id, QRCodeType.REGULAR)
    await engine.redeem(used_code.code, event_id)

    results = await workflow.request_qr_dispatch(event_id)

    by_guest = {result.guest_id: result for result in results}
    assert by_guest[sent_guest].code == sent_code.code
    assert by_guest[used_guest].code == used_code.code
    assert all(result.qr_codes_issued == 0 for result in results)
    assert len(await engine.history(sent_guest, event_id)) == 1
    [still_used] = await engine.history(used_guest, event_id)
    assert still_used.status == QRCodeStatus.USED


@pytest.mark.asyncio
async def test_dispatch_twice_sends_same_code(workflow, seed, event_id):
    guest_id = await seed.guest("ann@example.com", event_id=event_id)
    await seed.invitation(guest_id, event_id, response=RSVPResponse.COMING)

    [first] = await workflow.request_qr_dispatch(event_id)
    [second] = await workflow.request_qr_dispatch(event_id)

    assert first.code == second.code
    assert second.qr_codes_issued == 0


@pytest.mark.asyncio
async def test_dispatch_gives_vip_guests_vip_codes(workflow, engine, seed, event_id):
    guest_id = await seed.guest("ann@example.com", event_id=event_id, is_vip=True)
    await seed.invitation(guest_id, event_id, response=RSVPResponse.COMING)

    await workflow.request_qr_dispatch(event_id)

    [qr_code] = await engine.history(guest_id, event_id)
    assert qr_code.type == QRCodeType.VIP


@pytest.mark.asyncio
async def test_dispatch_bundles_companion_code(
    workflow, engine, seed, event_id, notification_dispatcher
):
    guest_id = await seed.guest("ann@example.com", "Ann", "Adams", event_id=event_id)
    rsvp = await workflow.submit_response(
        guest_id, event_id, RSVPResponse.COMING_WITH_COMPANION, "jane@example.com"
    )
    notification_dispatcher.delivered.clear()

    results = await workflow.request_qr_dispatch(event_id)

    by_guest = {result.guest_id: result for result in results}
    primary = by_guest[guest_id]
    assert primary.outcome == DispatchOutcome.SUCCESS
    assert primary.companion_code is not None
    # Codes were issued during the RSVP already
    assert primary.qr_codes_issued == 0
    # The companion answered nothing themselves
    assert by_guest[rsvp.companion_id].outcome == DispatchOutcome.SKIPPED

    [message] = notification_dispatcher.delivered
    assert message["payload"]["to_address"] == "ann@example.com"
    assert message["payload"]["companion_qr_code"] == primary.companion_code
    [companion_code] = await engine.history(rsvp.companion_id, event_id)
    assert companion_code.code == primary.companion_code
    assert companion_code.status == QRCodeStatus.SENT


@pytest.mark.asyncio
async def test_dispatch_with_missing_companion_still_sends_primary(
    workflow, seed, event_id, notification_dispatcher
):
    guest_id = await seed.guest("ann@example.com", event_id=event_id)
    await seed.invitation(
        guest_id,
        event_id,
        response=RSVPResponse.COMING_WITH_COMPANION,
        companion_email="ghost@example.com",
    )

    [result] = await workflow.request_qr_dispatch(event_id)

    assert result.outcome == DispatchOutcome.SUCCESS
    assert result.companion_code is None
    assert "companion_qr_code" not in notification_dispatcher.delivered[0]["payload"]


@pytest.mark.asyncio
async def test_dispatch_failure_is_isolated_per_guest(
    workflow, engine, seed, event_id, notification_dispatcher
):
    failing = await seed.guest("ann@example.com", "Ann", "Adams", event_id=event_id)
    working = await seed.guest("bob@example.com", "Bob", "Baker", event_id=event_id)
    for guest_id in (failing, working):
        await seed.invitation(guest_id, event_id, response=RSVPResponse.COMING)
    notification_dispatcher.failing.add("ann@example.com")

    results = await workflow.request_qr_dispatch(event_id)

    by_guest = {result.guest_id: result for result in results}
    assert by_guest[failing].outcome == DispatchOutcome.FAILED
    assert by_guest[failing].reason.startswith("DISPATCH_FAILED")
    assert by_guest[working].outcome == DispatchOutcome.SUCCESS
    # The code survives the failed delivery
    [qr_code] = await engine.history(failing, event_id)
    assert qr_code.status == QRCodeStatus.SENT


@pytest.mark.asyncio
async def test_dispatch_to_guest_subset(workflow, seed, event_id, notification_dispatcher):
    ann = await seed.guest("ann@example.com", "Ann", "Adams", event_id=event_id)
    bob = await seed.guest("bob@example.com", "Bob", "Baker", event_id=event_id)
    for guest_id in (ann, bob):
        await seed.invitation(guest_id, event_id, response=RSVPResponse.COMING)

    results = await workflow.request_qr_dispatch(event_id, guest_ids=[bob])

    assert [result.guest_id for result in results] == [bob]
    assert len(notification_dispatcher.delivered) == 1


@pytest.mark.asyncio
async def test_dispatch_unknown_event(workflow):
    with pytest.raises(EventNotFoundError):
        await workflow.request_qr_dispatch(uuid4())


@pytest.mark.asyncio
async def test_unexpected_dispatcher_error_fails_only_that_guest(
    workflow, seed, event_id, notification_dispatcher
):
    crashing = await seed.guest("ann@example.com", "Ann", "Adams", event_id=event_id)
    working = await seed.guest("bob@example.com", "Bob", "Baker", event_id=event_id)
    for guest_id in (crashing, working):
        await seed.invitation(guest_id, event_id, response=RSVPResponse.COMING)
    notification_dispatcher.crashing.add("ann@example.com")

    results = await workflow.request_qr_dispatch(event_id)

    by_guest = {result.guest_id: result for result in results}
    assert by_guest[crashing].outcome == DispatchOutcome.FAILED
    assert by_guest[crashing].reason.startswith("INTERNAL_ERROR")
    assert by_guest[working].outcome == DispatchOutcome.SUCCESS
    [message] = notification_dispatcher.delivered
    assert message["payload"]["to_address"] == "bob@example.com"


@pytest.mark.asyncio
async def test_dispatch_through_resend_with_plain_text_reply(
    session_maker, engine, seed, event_id
):
    for email in ("ann@example.com", "bob@example.com"):
        guest_id = await seed.guest(email, event_id=event_id)
        await seed.invitation(guest_id, event_id, response=RSVPResponse.COMING)
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, text="OK")

    config = SimpleNamespace(resend_api_key="re_test_key", emails_from="noreply@example.com")
    workflow = SqlRSVPWorkflow(
        session_maker=session_maker,
        qr_code_engine=engine,
        notification_dispatcher=ResendNotificationDispatcher(
            config, transport=httpx.MockTransport(handler)
        ),
        dispatch_interval=0,
    )

    results = await workflow.request_qr_dispatch(event_id)

    assert [result.outcome for result in results] == [DispatchOutcome.SUCCESS] * 2
    assert len(requests) == 2
