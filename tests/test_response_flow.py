"""Tests for the dual-acceptance response lifecycle."""
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from postlink.core.exceptions import (
    AlreadyMatchedError,
    ConflictError,
    InsufficientBalanceError,
    ResponseAlreadyProcessedError,
    ResponseNotFoundError,
    RoleMismatchError,
    StoreError,
)
from postlink.models.chat import Chat
from postlink.models.enums import ChatStatus, DualStatus, OfferType, RequestStatus, ResponseStatus
from postlink.models.user import User
from postlink.services import store
from postlink.services.chat_bridge import find_or_create_chat
from postlink.services.requests import create_request
from postlink.services.responses import (
    ResponseAction,
    apply_action,
    cancel_response,
    create_manual_response,
    list_user_responses,
    recompute_request_status,
    resolve_response,
)
from tests.conftest import make_request, request_data


async def _matched_pair(db, sender, deliverer):
    send = await create_request(db, sender, OfferType.SEND, request_data())
    delivery = await create_request(db, deliverer, OfferType.DELIVERY, request_data())
    response = await store.find_matching_response(db, send.id, delivery.id)
    return send, delivery, response


@pytest.mark.asyncio
async def test_full_acceptance_scenario(db, sender_user, deliverer_user):
    send, delivery, response = await _matched_pair(db, sender_user, deliverer_user)
    assert response.user_id == deliverer_user.id
    assert response.responder_id == sender_user.id
    assert response.overall_status == ResponseStatus.PENDING

    response = await apply_action(db, response.id, deliverer_user, ResponseAction.ACCEPT)
    assert response.deliverer_status == DualStatus.ACCEPTED
    assert response.sender_status == DualStatus.PENDING
    assert response.overall_status == ResponseStatus.PARTIAL
    assert response.chat_id is None
    # Offering side advances once someone commits
    await db.refresh(send)
    assert send.status == RequestStatus.HAS_RESPONSES

    response = await apply_action(db, response.id, sender_user, ResponseAction.ACCEPT)
    assert response.overall_status == ResponseStatus.ACCEPTED
    assert response.chat_id is not None

    chat = await db.get(Chat, response.chat_id)
    assert {chat.sender_id, chat.receiver_id} == {sender_user.id, deliverer_user.id}
    assert chat.status == ChatStatus.ACTIVE

    await db.refresh(send)
    await db.refresh(delivery)
    assert send.status == RequestStatus.MATCHED
    assert delivery.status == RequestStatus.MATCHED
    assert send.matched_delivery_id == delivery.id
    assert delivery.matched_send_id == send.id


@pytest.mark.asyncio
async def test_full_acceptance_decrements_sender_balance_once(db, sender_user, deliverer_user):
    _, _, response = await _matched_pair(db, sender_user, deliverer_user)

    await apply_action(db, response.id, sender_user, ResponseAction.ACCEPT)
    await apply_action(db, response.id, deliverer_user, ResponseAction.ACCEPT)

    await db.refresh(sender_user)
    await db.refresh(deliverer_user)
    assert sender_user.links_balance == 2
    assert deliverer_user.links_balance == 3


@pytest.mark.asyncio
async def test_acceptance_rejects_competing_responses(db, sender_user, deliverer_user, second_deliverer):
    delivery_1 = await create_request(db, deliverer_user, OfferType.DELIVERY, request_data())
    delivery_2 = await create_request(db, second_deliverer, OfferType.DELIVERY, request_data())
    send = await create_request(db, sender_user, OfferType.SEND, request_data())

    winner = await store.find_matching_response(db, send.id, delivery_1.id)
    loser = await store.find_matching_response(db, send.id, delivery_2.id)

    await apply_action(db, winner.id, deliverer_user, ResponseAction.ACCEPT)
    await apply_action(db, loser.id, second_deliverer, ResponseAction.ACCEPT)
    await apply_action(db, winner.id, sender_user, ResponseAction.ACCEPT)

    await db.refresh(loser)
    assert loser.overall_status == ResponseStatus.REJECTED
    assert loser.deliverer_status == DualStatus.REJECTED
    assert loser.sender_status == DualStatus.REJECTED

    await db.refresh(delivery_2)
    assert delivery_2.status == RequestStatus.OPEN

    # No other pending or partial response touches the matched send request
    leftovers = await store.find_where(
        db,
        store.touching(OfferType.SEND, send.id),
        overall_status=(ResponseStatus.PENDING, ResponseStatus.PARTIAL),
    )
    assert leftovers == []

    with pytest.raises(ResponseAlreadyProcessedError):
        await apply_action(db, loser.id, sender_user, ResponseAction.ACCEPT)


@pytest.mark.asyncio
async def test_accept_on_already_matched_request_conflicts(db, sender_user, deliverer_user):
    send, _, response = await _matched_pair(db, sender_user, deliverer_user)
    send.status = RequestStatus.MATCHED
    await db.commit()

    with pytest.raises(AlreadyMatchedError):
        await apply_action(db, response.id, deliverer_user, ResponseAction.ACCEPT)

    await db.refresh(response)
    assert response.overall_status == ResponseStatus.PENDING
    assert (await db.execute(select(Chat))).scalars().all() == []


@pytest.mark.asyncio
async def test_reject_recomputes_request_status(db, sender_user, deliverer_user):
    send, delivery, response = await _matched_pair(db, sender_user, deliverer_user)
    assert delivery.status == RequestStatus.HAS_RESPONSES

    response = await apply_action(db, response.id, deliverer_user, ResponseAction.REJECT)
    assert response.overall_status == ResponseStatus.REJECTED
    assert response.deliverer_status == DualStatus.REJECTED

    await db.refresh(delivery)
    await db.refresh(send)
    assert delivery.status == RequestStatus.OPEN
    assert send.status == RequestStatus.OPEN


@pytest.mark.asyncio
async def test_accept_requires_links_balance(db, sender_user, deliverer_user):
    _, _, response = await _matched_pair(db, sender_user, deliverer_user)
    deliverer_user.links_balance = 0
    await db.commit()

    with pytest.raises(InsufficientBalanceError):
        await apply_action(db, response.id, deliverer_user, ResponseAction.ACCEPT)


@pytest.mark.asyncio
async def test_stranger_cannot_act(db, sender_user, deliverer_user, stranger):
    _, _, response = await _matched_pair(db, sender_user, deliverer_user)
    response_id = response.id

    with pytest.raises(RoleMismatchError):
        await apply_action(db, response_id, stranger, ResponseAction.ACCEPT)
    # Rollback expired everything loaded in the session
    await db.refresh(stranger)
    with pytest.raises(RoleMismatchError):
        await cancel_response(db, response_id, stranger)


@pytest.mark.asyncio
async def test_same_role_cannot_accept_twice(db, sender_user, deliverer_user):
    _, _, response = await _matched_pair(db, sender_user, deliverer_user)
    await apply_action(db, response.id, deliverer_user, ResponseAction.ACCEPT)

    with pytest.raises(ResponseAlreadyProcessedError):
        await apply_action(db, response.id, deliverer_user, ResponseAction.ACCEPT)


@pytest.mark.asyncio
async def test_missing_response(db, deliverer_user):
    with pytest.raises(ResponseNotFoundError):
        await apply_action(db, 999, deliverer_user, ResponseAction.ACCEPT)


@pytest.mark.asyncio
async def test_accept_by_composite_id(db, sender_user, deliverer_user):
    send, delivery, response = await _matched_pair(db, sender_user, deliverer_user)

    result = await apply_action(db, f"send_{send.id}_delivery_{delivery.id}", deliverer_user, ResponseAction.ACCEPT)
    assert result.id == response.id
    assert result.overall_status == ResponseStatus.PARTIAL


@pytest.mark.asyncio
async def test_cancel_response(db, sender_user, deliverer_user):
    _, delivery, response = await _matched_pair(db, sender_user, deliverer_user)

    assert await cancel_response(db, response.id, deliverer_user) is True
    assert await store.get_response(db, response.id) is None
    await db.refresh(delivery)
    assert delivery.status == RequestStatus.OPEN

    # Second cancel is a no-op
    assert await cancel_response(db, response.id, deliverer_user) is False


@pytest.mark.asyncio
async def test_cancel_accepted_response_fails(db, sender_user, deliverer_user):
    _, _, response = await _matched_pair(db, sender_user, deliverer_user)
    await apply_action(db, response.id, deliverer_user, ResponseAction.ACCEPT)
    await apply_action(db, response.id, sender_user, ResponseAction.ACCEPT)

    with pytest.raises(ResponseAlreadyProcessedError):
        await cancel_response(db, response.id, sender_user)


@pytest.mark.asyncio
async def test_recompute_leaves_matched_requests(db, sender_user):
    send = await make_request(db, OfferType.SEND, sender_user, status=RequestStatus.MATCHED)
    assert await recompute_request_status(db, OfferType.SEND, send.id) == RequestStatus.MATCHED
    assert await recompute_request_status(db, OfferType.SEND, 999) is None


@pytest.mark.asyncio
async def test_inbox_visibility(db, sender_user, deliverer_user, second_deliverer):
    delivery_1 = await create_request(db, deliverer_user, OfferType.DELIVERY, request_data())
    await create_request(db, second_deliverer, OfferType.DELIVERY, request_data())
    send = await create_request(db, sender_user, OfferType.SEND, request_data())

    # Pending matches are shown to deliverers only
    assert len(await list_user_responses(db, deliverer_user)) == 1
    assert len(await list_user_responses(db, second_deliverer)) == 1
    assert await list_user_responses(db, sender_user) == []

    first = await store.find_matching_response(db, send.id, delivery_1.id)
    await apply_action(db, first.id, deliverer_user, ResponseAction.ACCEPT)

    # The sender now sees the partial one, the competing deliverer loses sight of theirs
    assert [r.id for r in await list_user_responses(db, sender_user)] == [first.id]
    assert [r.id for r in await list_user_responses(db, deliverer_user)] == [first.id]
    assert await list_user_responses(db, second_deliverer) == []


@pytest.mark.asyncio
async def test_find_or_create_chat_deduplicates_and_reactivates(db, sender_user, deliverer_user):
    chat = await find_or_create_chat(db, sender_user.id, deliverer_user.id)
    chat.status = ChatStatus.INACTIVE
    await db.commit()

    again = await find_or_create_chat(db, deliverer_user.id, sender_user.id, send_request_id=5)
    await db.commit()

    assert again.id == chat.id
    assert again.status == ChatStatus.ACTIVE
    assert again.send_request_id == 5
    assert len((await db.execute(select(Chat))).scalars().all()) == 1


@pytest.mark.asyncio
async def test_acceptance_rejects_competing_manual_responses(
    db, sender_user, deliverer_user, second_deliverer, stranger
):
    send, delivery, response = await _matched_pair(db, sender_user, deliverer_user)
    on_send = await create_manual_response(db, second_deliverer, OfferType.SEND, send.id, "Заберу сегодня")
    on_delivery = await create_manual_response(db, stranger, OfferType.DELIVERY, delivery.id, "Возьмёте посылку?")

    await apply_action(db, response.id, deliverer_user, ResponseAction.ACCEPT)
    await apply_action(db, response.id, sender_user, ResponseAction.ACCEPT)

    for manual in (on_send, on_delivery):
        await db.refresh(manual)
        assert manual.overall_status == ResponseStatus.REJECTED
        assert manual.deliverer_status == DualStatus.REJECTED
        assert manual.sender_status == DualStatus.REJECTED


@pytest.mark.asyncio
async def test_failed_acceptance_rolls_back(db, sender_user, deliverer_user):
    send, delivery, response = await _matched_pair(db, sender_user, deliverer_user)
    response = await apply_action(db, response.id, deliverer_user, ResponseAction.ACCEPT)
    response_id = response.id
    await db.refresh(send)
    await db.refresh(delivery)
    send_status, delivery_status = send.status, delivery.status
    balance = sender_user.links_balance

    with patch(
        "postlink.services.responses.find_or_create_chat",
        new_callable=AsyncMock,
        side_effect=SQLAlchemyError("connection lost"),
    ):
        with pytest.raises(StoreError):
            await apply_action(db, response_id, sender_user, ResponseAction.ACCEPT)

    response = await store.get_response(db, response_id)
    await db.refresh(response)
    await db.refresh(send)
    await db.refresh(delivery)
    await db.refresh(sender_user)
    assert response.overall_status == ResponseStatus.PARTIAL
    assert response.sender_status == DualStatus.PENDING
    assert response.chat_id is None
    assert send.status == send_status
    assert delivery.status == delivery_status
    assert send.matched_delivery_id is None
    assert sender_user.links_balance == balance
    assert (await db.execute(select(Chat))).scalars().all() == []


def _accept_elsewhere_after_lookup(sender_id: int, deliverer_id: int, response_id: int):
    """Stand-in for resolve_response: after the first lookup, another session
    completes the acceptance before the caller gets the (now stale) row."""
    raced = False

    async def lookup(session, response_ref):
        nonlocal raced
        found = await resolve_response(session, response_ref)
        if not raced:
            raced = True
            async with AsyncSession(session.bind, expire_on_commit=False) as other:
                deliverer = await other.get(User, deliverer_id)
                sender = await other.get(User, sender_id)
                await apply_action(other, response_id, deliverer, ResponseAction.ACCEPT)
                await apply_action(other, response_id, sender, ResponseAction.ACCEPT)
        return found

    return lookup


async def _assert_match_intact(db, response_id, send, delivery):
    response = await store.get_response(db, response_id)
    await db.refresh(response)
    await db.refresh(send)
    await db.refresh(delivery)
    assert response.overall_status == ResponseStatus.ACCEPTED
    assert response.deliverer_status == DualStatus.ACCEPTED
    assert response.sender_status == DualStatus.ACCEPTED
    assert send.status == RequestStatus.MATCHED
    assert delivery.status == RequestStatus.MATCHED
    assert len((await db.execute(select(Chat))).scalars().all()) == 1


@pytest.mark.asyncio
async def test_reject_racing_full_acceptance_conflicts(db, sender_user, deliverer_user):
    send, delivery, response = await _matched_pair(db, sender_user, deliverer_user)
    response_id = response.id
    lookup = _accept_elsewhere_after_lookup(sender_user.id, deliverer_user.id, response_id)

    with patch("postlink.services.responses.resolve_response", new=lookup):
        with pytest.raises(ConflictError):
            await apply_action(db, response_id, deliverer_user, ResponseAction.REJECT)

    await _assert_match_intact(db, response_id, send, delivery)


@pytest.mark.asyncio
async def test_cancel_racing_full_acceptance_conflicts(db, sender_user, deliverer_user):
    send, delivery, response = await _matched_pair(db, sender_user, deliverer_user)
    response_id = response.id
    lookup = _accept_elsewhere_after_lookup(sender_user.id, deliverer_user.id, response_id)

    with patch("postlink.services.responses.resolve_response", new=lookup):
        with pytest.raises(ConflictError):
            await cancel_response(db, response_id, deliverer_user)

    await _assert_match_intact(db, response_id, send, delivery)
