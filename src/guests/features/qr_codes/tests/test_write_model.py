import asyncio
from uuid import uuid4

import pytest

from src.guests.dtos import QRCodeStatus, QRCodeType
from src.guests.errors import (
    ErrorKind,
    NotAMemberError,
    QRCodeAlreadyUsedError,
    QRCodeNotFoundError,
    StoreError,
)
from src.guests.features.qr_codes import write_model
from src.guests.features.qr_codes.write_model import SqlQRCodeEngine, generate_token


@pytest.fixture
async def event_id(seed):
    return await seed.event()


@pytest.fixture
async def guest_id(seed, event_id):
    return await seed.guest("alice@example.com", event_id=event_id)


@pytest.fixture
def engine(session_maker):
    return SqlQRCodeEngine(session_maker)


def test_generate_token_is_random_and_url_safe():
    tokens = {generate_token() for _ in range(100)}

    assert len(tokens) == 100
    for token in tokens:
        assert len(token) >= 32
        assert all(c.isalnum() or c in "-_" for c in token)


@pytest.mark.asyncio
async def test_issue_creates_generated_code(engine, guest_id, event_id):
    qr_code = await engine.issue(guest_id, event_id, QRCodeType.REGULAR)

    assert qr_code.status == QRCodeStatus.GENERATED
    assert qr_code.type == QRCodeType.REGULAR
    assert qr_code.guest_id == guest_id
    assert qr_code.event_id == event_id
    assert qr_code.used_at is None


@pytest.mark.asyncio
async def test_issue_twice_returns_same_code(engine, guest_id, event_id):
    first = await engine.issue(guest_id, event_id, QRCodeType.REGULAR)
    second = await engine.issue(guest_id, event_id, QRCodeType.REGULAR)

    assert first.code == second.code
    assert len(await engine.history(guest_id, event_id)) == 1


@pytest.mark.asyncio
async def test_issue_keeps_types_apart(engine, guest_id, event_id):
    regular = await engine.issue(guest_id, event_id, QRCodeType.REGULAR)
    vip = await engine.issue(guest_id, event_id, QRCodeType.VIP)

    assert regular.code != vip.code


@pytest.mark.asyncio
async def test_issue_refuses_guest_not_invited(engine, seed, event_id):
    outsider_id = await seed.guest("bob@example.com", first_name="Bob")

    with pytest.raises(NotAMemberError) as exc_info:
        await engine.issue(outsider_id, event_id, QRCodeType.REGULAR)

    assert exc_info.value.kind == ErrorKind.NOT_A_MEMBER
    assert await engine.history(outsider_id, event_id) == []


@pytest.mark.asyncio
async def test_concurrent_issue_leaves_one_active_code(engine, guest_id, event_id):
    results = await asyncio.gather(
        *(engine.issue(guest_id, event_id, QRCodeType.REGULAR) for _ in range(8))
    )

    assert len({qr_code.code for qr_code in results}) == 1
    active = [
        qr_code
        for qr_code in await engine.history(guest_id, event_id)
        if qr_code.status in (QRCodeStatus.GENERATED, QRCodeStatus.SENT)
    ]
    assert len(active) == 1


@pytest.mark.asyncio
async def test_mark_dispatched_moves_generated_to_sent(engine, guest_id, event_id):
    await engine.issue(guest_id, event_id, QRCodeType.REGULAR)

    assert await engine.mark_dispatched(guest_id, event_id) == 1
    # Already SENT, nothing left to move
    assert await engine.mark_dispatched(guest_id, event_id) == 0

    [qr_code] = await engine.history(guest_id, event_id)
    assert qr_code.status == QRCodeStatus.SENT


@pytest.mark.asyncio
async def test_issue_after_dispatch_returns_sent_code(engine, guest_id, event_id):
    issued = await engine.issue(guest_id, event_id, QRCodeType.REGULAR)
    await engine.mark_dispatched(guest_id, event_id)

    again = await engine.issue(guest_id, event_id, QRCodeType.REGULAR)

    assert again.code == issued.code
    assert again.status == QRCodeStatus.SENT


@pytest.mark.asyncio
async def test_issue_dispatch_redeem_round_trip(engine, guest_id, event_id):
    issued = await engine.issue(guest_id, event_id, QRCodeType.REGULAR)
    await engine.mark_dispatched(guest_id, event_id)

    redeemed = await engine.redeem(issued.code, event_id)

    assert redeemed.status == QRCodeStatus.USED
    assert redeemed.used_at is not None
    assert redeemed.guest_id == guest_id

    with pytest.raises(QRCodeAlreadyUsedError) as exc_info:
        await engine.redeem(issued.code, event_id)
    assert exc_info.value.kind == ErrorKind.ALREADY_USED
    assert exc_info.value.guest_id == guest_id
    assert exc_info.value.used_at is not None


@pytest.mark.asyncio
async def test_redeem_generated_code(engine, guest_id, event_id):
    issued = await engine.issue(guest_id, event_id, QRCodeType.VIP)

    redeemed = await engine.redeem(issued.code, event_id)

    assert redeemed.status == QRCodeStatus.USED


@pytest.mark.asyncio
async def test_redeem_unknown_code(engine, event_id):
    with pytest.raises(QRCodeNotFoundError) as exc_info:
        await engine.redeem("not-a-real-code", event_id)

    assert exc_info.value.kind == ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_redeem_wrong_event_is_not_found_and_leaves_code(engine, seed, guest_id, event_id):
    other_event_id = await seed.event("Other Event")
    issued = await engine.issue(guest_id, event_id, QRCodeType.REGULAR)

    with pytest.raises(QRCodeNotFoundError):
        await engine.redeem(issued.code, other_event_id)

    [qr_code] = await engine.history(guest_id, event_id)
    assert qr_code.status == QRCodeStatus.GENERATED
    assert qr_code.used_at is None


@pytest.mark.asyncio
async def test_redeem_used_code_at_wrong_event_is_not_found(engine, seed, guest_id, event_id):
    other_event_id = await seed.event("Other Event")
    issued = await engine.issue(guest_id, event_id, QRCodeType.REGULAR)
    await engine.redeem(issued.code, event_id)

    with pytest.raises(QRCodeNotFoundError):
        await engine.redeem(issued.code, other_event_id)


@pytest.mark.asyncio
async def test_redeem_expired_code_is_not_found(engine, guest_id, event_id):
    issued = await engine.issue(guest_id, event_id, QRCodeType.REGULAR)
    await engine.expire(guest_id, event_id)

    with pytest.raises(QRCodeNotFoundError):
        await engine.redeem(issued.code, event_id)


@pytest.mark.asyncio
@pytest.mark.parametrize("scanners", [2, 10])
async def test_concurrent_redeem_admits_exactly_once(engine, guest_id, event_id, scanners):
    issued = await engine.issue(guest_id, event_id, QRCodeType.REGULAR)
    await engine.mark_dispatched(guest_id, event_id)

    results = await asyncio.gather(
        *(engine.redeem(issued.code, event_id) for _ in range(scanners)),
        return_exceptions=True,
    )

    successes = [r for r in results if not isinstance(r, Exception)]
    already_used = [r for r in results if isinstance(r, QRCodeAlreadyUsedError)]
    assert len(successes) == 1
    assert len(already_used) == scanners - 1
    assert successes[0].status == QRCodeStatus.USED


@pytest.mark.asyncio
async def test_expire_filters_by_type_and_is_idempotent(engine, guest_id, event_id):
    await engine.issue(guest_id, event_id, QRCodeType.REGULAR)
    await engine.issue(guest_id, event_id, QRCodeType.VIP)

    assert await engine.expire(guest_id, event_id, QRCodeType.VIP) == 1
    assert await engine.expire(guest_id, event_id, QRCodeType.VIP) == 0

    statuses = {qr_code.type: qr_code.status for qr_code in await engine.history(guest_id, event_id)}
    assert statuses == {
        QRCodeType.REGULAR: QRCodeStatus.GENERATED,
        QRCodeType.VIP: QRCodeStatus.EXPIRED,
    }


@pytest.mark.asyncio
async def test_expire_leaves_used_codes_alone(engine, guest_id, event_id):
    issued = await engine.issue(guest_id, event_id, QRCodeType.REGULAR)
    await engine.redeem(issued.code, event_id)

    assert await engine.expire(guest_id, event_id) == 0


@pytest.mark.asyncio
async def test_reissue_replaces_active_code(engine, guest_id, event_id):
    old = await engine.issue(guest_id, event_id, QRCodeType.REGULAR)

    new = await engine.reissue(guest_id, event_id, QRCodeType.REGULAR)

    assert new.code != old.code
    assert new.status == QRCodeStatus.GENERATED
    with pytest.raises(QRCodeNotFoundError):
        await engine.redeem(old.code, event_id)
    assert (await engine.redeem(new.code, event_id)).status == QRCodeStatus.USED


@pytest.mark.asyncio
async def test_reissue_after_redemption_gives_fresh_code(engine, guest_id, event_id):
    old = await engine.issue(guest_id, event_id, QRCodeType.REGULAR)
    await engine.redeem(old.code, event_id)

    new = await engine.reissue(guest_id, event_id, QRCodeType.REGULAR)

    assert new.code != old.code
    statuses = [qr_code.status for qr_code in await engine.history(guest_id, event_id)]
    assert statuses == [QRCodeStatus.GENERATED, QRCodeStatus.USED]


@pytest.mark.asyncio
async def test_history_is_newest_first(engine, guest_id, event_id):
    first = await engine.issue(guest_id, event_id, QRCodeType.REGULAR)
    second = await engine.reissue(guest_id, event_id, QRCodeType.REGULAR)
    third = await engine.reissue(guest_id, event_id, QRCodeType.REGULAR)

    history = await engine.history(guest_id, event_id)

    assert [qr_code.code for qr_code in history] == [third.code, second.code, first.code]
    assert [qr_code.status for qr_code in history] == [
        QRCodeStatus.GENERATED,
        QRCodeStatus.EXPIRED,
        QRCodeStatus.EXPIRED,
    ]


@pytest.mark.asyncio
async def test_history_of_unknown_guest_is_empty(engine, event_id):
    assert await engine.history(uuid4(), event_id) == []


@pytest.mark.asyncio
async def test_issue_draws_new_token_after_collision(
    engine, seed, guest_id, event_id, monkeypatch
):
    other_id = await seed.guest("bob@example.com", event_id=event_id)
    taken = await engine.issue(other_id, event_id, QRCodeType.REGULAR)
    tokens = iter([taken.code, "fresh-token"])
    monkeypatch.setattr(write_model, "generate_token", lambda: next(tokens))

    issued = await engine.issue(guest_id, event_id, QRCodeType.REGULAR)

    assert issued.code == "fresh-token"
    assert issued.guest_id == guest_id
    [other_code] = await engine.history(other_id, event_id)
    assert other_code.code == taken.code


@pytest.mark.asyncio
async def test_issue_gives_up_when_every_token_collides(
    engine, seed, guest_id, event_id, monkeypatch
):
    other_id = await seed.guest("bob@example.com", event_id=event_id)
    taken = await engine.issue(other_id, event_id, QRCodeType.REGULAR)
    monkeypatch.setattr(write_model, "generate_token", lambda: taken.code)

    with pytest.raises(StoreError):
        await engine.issue(guest_id, event_id, QRCodeType.REGULAR)

    assert await engine.history(guest_id, event_id) == []
