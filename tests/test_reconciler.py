"""
Tests for the realtime reconciler
"""

import pytest

from tablecart.cart import Cart, OptimisticAddCartItem, OptimisticCartExecutor, RealtimeReconciler
from tablecart.realtime import CART_ERROR, CART_UPDATED, InMemoryCartChannel
from tablecart.session import SessionInfoStore

from conftest import BURGER_ID, SESSION_ID


@pytest.fixture
def channel():
    return InMemoryCartChannel()


@pytest.fixture
def reconciler(store, session, channel, mock_cart_client):
    reconciler = RealtimeReconciler(store, session, channel, client=mock_cart_client)
    reconciler.start()
    yield reconciler
    reconciler.stop()


def test_start_subscribes_both_events(reconciler, channel):
    assert channel.handler_count(SESSION_ID) == 2
    assert reconciler.subscribed_session_id == SESSION_ID


def test_start_without_session_subscribes_nothing(store, channel):
    reconciler = RealtimeReconciler(store, SessionInfoStore(None), channel)

    reconciler.start()

    assert channel.handler_count() == 0
    assert reconciler.subscribed_session_id is None


def test_cart_updated_overwrites_store(reconciler, store, channel, sample_cart_data):
    sample_cart_data["items"][0]["quantity"] = 5
    sample_cart_data["subTotal"] = "57.50"

    channel.publish(SESSION_ID, CART_UPDATED, sample_cart_data)

    assert store.cart == Cart.from_dict(sample_cart_data)
    assert store.cart.subtotal.to_eng_string() == "57.50"


def test_cart_updated_with_null_payload(reconciler, store, channel):
    channel.publish(SESSION_ID, CART_UPDATED, None)

    assert store.cart is None


def test_cart_updated_clears_error(reconciler, store, channel, sample_cart_data):
    store.set_error("Session closed")

    channel.publish(SESSION_ID, CART_UPDATED, sample_cart_data)

    assert store.error is None


@pytest.mark.asyncio
async def test_push_replaces_pending_speculative_items(
    reconciler, store, session, channel, mock_cart_client, sample_cart_data
):
    executor = OptimisticCartExecutor(store, session, mock_cart_client)
    await executor.add_item(
        OptimisticAddCartItem(menu_item_id="menu-fries", menu_item_name="Fries", base_price="3.00")
    )
    assert store.cart.has_pending_items

    channel.publish(SESSION_ID, CART_UPDATED, sample_cart_data)

    assert store.cart == Cart.from_dict(sample_cart_data)
    assert not store.cart.has_pending_items


def test_older_snapshot_arriving_last_wins(reconciler, store, channel, sample_cart_data):
    newer = dict(sample_cart_data, items=[dict(sample_cart_data["items"][0], quantity=4)])
    older = dict(sample_cart_data, items=[dict(sample_cart_data["items"][0], quantity=3)])

    channel.publish(SESSION_ID, CART_UPDATED, newer)
    channel.publish(SESSION_ID, CART_UPDATED, older)

    assert store.cart.find_item(BURGER_ID).quantity == 3


def test_cart_error_records_message_only(reconciler, store, channel, sample_cart):
    channel.publish(
        SESSION_ID,
        CART_ERROR,
        {"message": "Session is closed", "details": {"code": 409}, "originatingEvent": "cart:add"},
    )

    assert store.error == "Session is closed"
    assert store.cart == sample_cart


def test_events_of_other_sessions_are_ignored(reconciler, store, channel, sample_cart):
    channel.publish("other-session", CART_UPDATED, None)
    channel.publish("other-session", CART_ERROR, {"message": "nope"})

    assert store.cart == sample_cart
    assert store.error is None


def test_session_switch_resubscribes_and_clears(reconciler, store, session, channel):
    session.set_session("session-0002")

    assert channel.handler_count(SESSION_ID) == 0
    assert channel.handler_count("session-0002") == 2
    assert store.cart is None

    channel.publish(SESSION_ID, CART_ERROR, {"message": "stale"})
    assert store.error is None


def test_session_end_unsubscribes(reconciler, session, channel):
    session.clear()

    assert channel.handler_count() == 0


def test_stop_unsubscribes_everything(store, session, channel):
    reconciler = RealtimeReconciler(store, session, channel)
    reconciler.start()

    reconciler.stop()
    session.set_session("session-0002")

    assert channel.handler_count() == 0


@pytest.mark.asyncio
async def test_context_manager(store, session, channel):
    async with RealtimeReconciler(store, session, channel):
        assert channel.handler_count(SESSION_ID) == 2

    assert channel.handler_count() == 0


@pytest.mark.asyncio
async def test_refresh_sets_cart(reconciler, store, mock_cart_client, sample_cart_data):
    fetched = Cart.from_dict(dict(sample_cart_data, items=[]))
    mock_cart_client.get_cart.return_value = fetched

    assert await reconciler.refresh() is fetched

    assert store.cart is fetched
    mock_cart_client.get_cart.assert_awaited_once_with(SESSION_ID)


@pytest.mark.asyncio
async def test_refresh_without_session(store, channel, mock_cart_client):
    reconciler = RealtimeReconciler(store, SessionInfoStore(None), channel, client=mock_cart_client)

    assert await reconciler.refresh() is None
    mock_cart_client.get_cart.assert_not_called()


def test_handler_accepts_cart_instance(reconciler, store, channel):
    cart = Cart(id="cart-2", session_id=SESSION_ID)

    channel.publish(SESSION_ID, CART_UPDATED, cart)

    assert store.cart is cart


def test_resubscribe_same_session_is_a_no_op(reconciler, channel):
    reconciler.resubscribe(SESSION_ID)

    assert channel.handler_count(SESSION_ID) == 2
    assert reconciler.subscribed_session_id == SESSION_ID
