import asyncio

import pytest

from conftest import COIN, MINTER, MULTI, NFT, FakeChain, FakeStream, tx_hash
from mintfeed.abi import MINT_LOG_TOPICS, TRANSFER_TOPIC
from mintfeed.aggregator import Aggregator
from mintfeed.allowlist import ContractAllowList
from mintfeed.chain import TransportError
from mintfeed.metadata import MetadataEnricher
from mintfeed.session import LiveSession, SessionState
from mintfeed.timestamps import TimestampResolver


def make_session(stream: FakeStream, chain: FakeChain) -> LiveSession:
    aggregator = Aggregator()
    return LiveSession(
        stream=stream,
        transactions=chain,
        allowlist=ContractAllowList([MINTER]),
        aggregator=aggregator,
        enricher=MetadataEnricher(chain, aggregator.store),
        resolver=TimestampResolver(chain),
    )


async def settle(session: LiveSession, stream: FakeStream) -> None:
    await stream.delivered.wait()
    await session.drain()


@pytest.mark.asyncio
async def test_streams_mints_into_feed_and_summaries(chain, logs):
    stream = FakeStream([
        logs.erc721(1, block=10, tx=1),
        logs.erc1155_batch([4, 5], [1, 1], block=11, tx=2),
        logs.erc20(10**18, block=11, tx=3, index=1),
    ])
    session = make_session(stream, chain)

    await session.start()
    assert session.state is SessionState.STREAMING
    assert stream.subscribed_topics == MINT_LOG_TOPICS

    await settle(session, stream)
    agg = session.aggregator

    assert [it.token_id for it in agg.events] == [None, "5", "4", "1"]
    assert all(it.timestamp == 1_700_000_000 + it.block_number for it in agg.events)
    assert agg.summaries[NFT].total_mint_events == 1
    assert agg.summaries[MULTI].total_mint_events == 2
    assert agg.summaries[COIN].decimals == 18
    assert agg.summaries[NFT].name == "Token"

    await session.stop()
    assert session.state is SessionState.IDLE
    assert stream.unsubscribed == 1
    # results stay visible after stop
    assert len(agg.events) == 4


@pytest.mark.asyncio
async def test_logs_outside_allowlist_are_ignored(chain, logs):
    chain.tx_to[tx_hash(2)] = NFT
    chain.tx_to[tx_hash(3)] = None  # contract creation
    stream = FakeStream([logs.erc721(1, tx=1), logs.erc721(2, tx=2), logs.erc721(3, tx=3)])
    session = make_session(stream, chain)

    await session.start()
    await settle(session, stream)

    assert [it.token_id for it in session.aggregator.events] == ["1"]
    await session.stop()


@pytest.mark.asyncio
async def test_failing_log_does_not_affect_siblings(chain, logs):
    chain.tx_to[tx_hash(2)] = RuntimeError("tx lookup timed out")
    stream = FakeStream([
        logs.erc721(1, tx=1),
        logs.erc721(2, tx=2),
        logs.make([TRANSFER_TOPIC], b"", tx=4),  # malformed
        logs.erc721(3, tx=3),
    ])
    session = make_session(stream, chain)

    await session.start()
    await settle(session, stream)

    assert sorted(it.token_id for it in session.aggregator.events) == ["1", "3"]
    assert session.error is None
    await session.stop()


@pytest.mark.asyncio
async def test_metadata_fetched_once_per_contract(chain, logs):
    chain.gate = asyncio.Event()
    stream = FakeStream([logs.erc721(i, tx=i, index=i) for i in range(5)])
    session = make_session(stream, chain)

    await session.start()
    await stream.delivered.wait()
    for _ in range(10):
        await asyncio.sleep(0)
    chain.gate.set()
    await session.drain()

    assert chain.calls("name") == 1
    assert chain.calls("symbol") == 1
    assert session.aggregator.summaries[NFT].total_mint_events == 5
    assert session.aggregator.summaries[NFT].symbol == "TKN"
    await session.stop()


@pytest.mark.asyncio
async def test_restart_resets_state(chain, logs):
    stream = FakeStream([logs.erc721(1)])
    session = make_session(stream, chain)
    await session.start()
    await settle(session, stream)
    first = session.aggregator.generation
    await session.stop()

    stream.pending = []
    stream.delivered = asyncio.Event()
    stream.closed = asyncio.Event()
    await session.start()

    assert session.aggregator.generation == first + 1
    assert session.aggregator.events == []
    assert session.aggregator.summaries == {}
    assert NFT not in session.aggregator.store
    await session.stop()


@pytest.mark.asyncio
async def test_completion_from_previous_session_is_discarded(chain, logs):
    stream = FakeStream()
    session = make_session(stream, chain)
    await session.start()
    old = session.aggregator.generation
    await session.stop()

    stream.closed = asyncio.Event()
    await session.start()
    items = await session.handle_log(old, logs.erc721(9))

    assert [it.token_id for it in items] == ["9"]
    assert session.aggregator.events == []
    await session.drain()
    assert session.aggregator.summaries == {}
    assert NFT not in session.aggregator.store
    await session.stop()


@pytest.mark.asyncio
async def test_start_refused_without_stream(chain):
    stream = FakeStream(available=False)
    session = make_session(stream, chain)

    assert not session.can_start
    with pytest.raises(TransportError):
        await session.start()
    assert session.state is SessionState.IDLE
    assert "not available" in session.error


@pytest.mark.asyncio
async def test_subscription_failure_surfaces_error(chain):
    stream = FakeStream(fail_subscribe=True)
    session = make_session(stream, chain)

    with pytest.raises(TransportError):
        await session.start()
    assert session.state is SessionState.IDLE
    assert "subscription failed" in session.error


@pytest.mark.asyncio
async def test_lost_stream_returns_to_idle(chain, logs):
    stream = FakeStream([logs.erc721(1)], fail_after=True)
    session = make_session(stream, chain)

    await session.start()
    await session.wait_closed()
    await session.drain()

    assert session.state is SessionState.IDLE
    assert "stream lost" in session.error
    assert session.can_start
    assert len(session.aggregator.events) == 1


@pytest.mark.asyncio
async def test_start_twice_is_a_no_op(chain):
    stream = FakeStream()
    session = make_session(stream, chain)
    await session.start()
    generation = session.aggregator.generation

    await session.start()
    assert session.aggregator.generation == generation
    await session.stop()
    await session.stop()
    assert stream.unsubscribed == 1


@pytest.mark.asyncio
async def test_clean_stream_end_returns_to_idle(chain, logs):
    stream = FakeStream([logs.erc721(1)], end_after=True)
    session = make_session(stream, chain)

    await session.start()
    await session.wait_closed()
    await session.drain()

    assert session.state is SessionState.IDLE
    assert session.error == "Log stream closed"
    assert session.can_start
    assert len(session.aggregator.events) == 1


@pytest.mark.asyncio
async def test_stop_while_subscribing_leaves_no_subscription(chain):
    stream = FakeStream()
    stream.subscribe_gate = asyncio.Event()
    session = make_session(stream, chain)

    starting = asyncio.create_task(session.start())
    await asyncio.sleep(0)
    assert session.state is SessionState.SUBSCRIBING

    await session.stop()
    stream.subscribe_gate.set()
    await starting

    assert session.state is SessionState.IDLE
    assert not stream.active
    assert stream.unsubscribed == 1
    assert session.error is None
    assert session.can_start
