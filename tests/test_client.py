"""End-to-end tests for the telemetry client on a virtual clock."""

import asyncio

import pytest

from pixel_telemetry.client import ClientState, PixelClient
from pixel_telemetry.config import PixelConfig
from pixel_telemetry.errors import ConfigError, DeliveryError, PixelError
from pixel_telemetry.events import EventType
from pixel_telemetry.location import LocationResolver
from pixel_telemetry.scheduler import AsyncioScheduler
from pixel_telemetry.transport import DebugTransport, HttpTransport
from pixel_telemetry.transport.base import Transport


async def lisbon():
    return {"country_name": "Portugal", "city": "Lisbon", "region": "Lisbon", "ip": "203.0.113.42"}


@pytest.fixture
def config() -> PixelConfig:
    return PixelConfig(
        collector_url="https://collector.test/track",
        batch_interval_seconds=5.0,
        heartbeat_interval_seconds=30.0,
    )


@pytest.fixture
def client(config, page, scheduler, transport) -> PixelClient:
    return PixelClient(
        config=config,
        page=page,
        transport=transport,
        scheduler=scheduler,
        resolver=LocationResolver(lookup=lisbon),
        clock=scheduler.now,
    )


def delivered(transport):
    return [e for batch in transport.sent for e in batch]


class GatedTransport(Transport):
    """
    Sends block on ``gate``; the first ``failures`` of them then fail.

    Records whether the transport was closed while a send was running.
    """

    def __init__(self, failures: int = 0):
        self.gate = asyncio.Event()
        self.started = asyncio.Event()
        self.failures = failures
        self.sending = 0
        self.closed = False
        self.closed_mid_send = False
        self.sent = []
        self.beacons = []

    async def send(self, events):
        self.sending += 1
        self.started.set()
        try:
            await self.gate.wait()
            if self.failures > 0:
                self.failures -= 1
                raise DeliveryError("HTTP 502", status_code=502)
            self.sent.append(list(events))
        finally:
            self.sending -= 1

    def beacon(self, events):
        self.beacons.append(list(events))
        return True

    async def stop(self):
        self.closed_mid_send = self.sending > 0
        self.closed = True


class TestConstruction:
    def test_builds_http_transport_from_config(self, config):
        client = PixelClient(config=config)

        assert isinstance(client.transport, HttpTransport)
        assert client.transport.collector_url == "https://collector.test/track"
        assert client.state == ClientState.BOOTSTRAPPING

    def test_debug_uses_debug_transport(self):
        client = PixelClient(config=PixelConfig(debug=True, collector_url=""))

        assert isinstance(client.transport, DebugTransport)

    def test_missing_collector_rejected(self):
        with pytest.raises(ConfigError):
            PixelClient(config=PixelConfig(debug=False, collector_url=""))

    def test_instances_are_independent(self, config):
        a = PixelClient(config=config)
        b = PixelClient(config=config)

        a.track(EventType.CLICK)

        assert a.queue is not b.queue
        assert len(b.queue) == 0


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_activates(self, client, scheduler):
        await client.start(track_page_view=False)

        assert client.state == ClientState.ACTIVE
        assert scheduler.active == 2

        with pytest.raises(PixelError):
            await client.start()

    @pytest.mark.asyncio
    async def test_regular_flush(self, client, scheduler, transport):
        await client.start(track_page_view=False)
        click = client.track(EventType.CLICK, {"label": "buy"})

        await scheduler.advance(5.0)

        assert transport.sent == [[click]]
        assert client.queue.is_empty

    @pytest.mark.asyncio
    async def test_page_view_enriched_once(self, client, transport):
        await client.start(track_page_view=False)
        assert await client.track_page_view()
        assert not await client.track_page_view()

        await client.stop()

        visits = [e for e in delivered(transport) if e.type == "visit"]
        assert len(visits) == 1
        assert visits[0].data["city"] == "Lisbon"
        assert visits[0].data["page_title"] == "Pricing"
        assert client.stats["location_lookups"] == 1

    @pytest.mark.asyncio
    async def test_concurrent_page_views_record_one_visit(self, config, page, scheduler, transport):
        release = asyncio.Event()

        async def stalled_lookup():
            await release.wait()
            return await lisbon()

        client = PixelClient(
            config=config, page=page, transport=transport, scheduler=scheduler,
            resolver=LocationResolver(lookup=stalled_lookup), clock=scheduler.now,
        )
        first = asyncio.create_task(client.track_page_view())
        second = asyncio.create_task(client.track_page_view())
        await asyncio.sleep(0)
        assert not first.done() and not second.done()

        release.set()
        results = await asyncio.gather(first, second)

        assert sorted(results) == [False, True]
        visits = [e for e in client.queue.snapshot() if e.type == "visit"]
        assert len(visits) == 1
        assert client.resolver.lookups == 1

    @pytest.mark.asyncio
    async def test_retry_on_next_tick(self, config, page, scheduler, transport_factory):
        transport = transport_factory(failures=1)
        client = PixelClient(
            config=config, page=page, transport=transport, scheduler=scheduler,
            resolver=LocationResolver(lookup=lisbon), clock=scheduler.now,
        )
        await client.start(track_page_view=False)
        click = client.track(EventType.CLICK)

        await scheduler.advance(5.0)
        assert client.queue.snapshot() == [click]

        await scheduler.advance(5.0)
        assert client.queue.is_empty
        assert transport.sent == [[click]]

    @pytest.mark.asyncio
    async def test_heartbeat_every_interval(self, client, scheduler, transport):
        await client.start(track_page_view=False)

        await scheduler.advance(95.0)

        beats = [e for e in delivered(transport) if e.type == "heartbeat"]
        assert [e.data["active_time"] for e in beats] == [30, 60, 90]

    @pytest.mark.asyncio
    async def test_terminate(self, client, scheduler, transport, page):
        await client.start(track_page_view=False)
        await scheduler.advance(12.0)
        client.track(EventType.SCROLL, {"depth": 50})
        client.navigate("https://example.com/bye")

        client.terminate()

        assert client.state == ClientState.ENDED
        assert scheduler.active == 0
        [batch] = transport.beacons
        assert [e.type for e in batch] == ["scroll", "session_end"]
        assert batch[-1].data == {"duration": 12, "final_url": "https://example.com/bye"}

        assert client.track(EventType.CLICK) is None
        await scheduler.advance(60.0)
        assert transport.sent == []

        await client.stop()
        assert client.state == ClientState.ENDED

    @pytest.mark.asyncio
    async def test_stop_flushes_without_session_end(self, client, scheduler, transport):
        await client.start(track_page_view=False)
        client.track(EventType.CLICK)

        await client.stop()

        assert client.state == ClientState.ENDED
        assert scheduler.active == 0
        assert [e.type for e in delivered(transport)] == ["click"]
        assert transport.beacons == []

    @pytest.mark.asyncio
    async def test_stop_waits_for_in_flight_flush(self, config, page, scheduler):
        transport = GatedTransport()
        client = PixelClient(
            config=config, page=page, transport=transport, scheduler=scheduler,
            resolver=LocationResolver(lookup=lisbon), clock=scheduler.now,
        )
        await client.start(track_page_view=False)
        first = client.track(EventType.CLICK, {"n": 1})
        pending = asyncio.create_task(client.flush())
        await asyncio.sleep(0)
        second = client.track(EventType.CLICK, {"n": 2})

        stopping = asyncio.create_task(client.stop())
        await asyncio.sleep(0)
        assert not transport.closed

        transport.gate.set()
        await pending
        await stopping

        assert transport.sent == [[first], [second]]
        assert not transport.closed_mid_send
        assert transport.closed
        assert client.queue.is_empty
        assert client.state == ClientState.ENDED

    @pytest.mark.asyncio
    async def test_stop_waits_for_running_scheduled_tick(self, page):
        transport = GatedTransport()
        client = PixelClient(
            config=PixelConfig(
                collector_url="https://collector.test/track",
                batch_interval_seconds=0.01,
                heartbeat_interval_seconds=30.0,
            ),
            page=page,
            transport=transport,
            scheduler=AsyncioScheduler(),
            resolver=LocationResolver(lookup=lisbon),
        )
        await client.start(track_page_view=False)
        first = client.track(EventType.CLICK, {"n": 1})
        await asyncio.wait_for(transport.started.wait(), timeout=1.0)
        second = client.track(EventType.CLICK, {"n": 2})

        stopping = asyncio.create_task(client.stop())
        await asyncio.sleep(0.02)
        assert not stopping.done()

        transport.gate.set()
        await asyncio.wait_for(stopping, timeout=1.0)

        assert transport.sent == [[first], [second]]
        assert not transport.closed_mid_send
        assert client.queue.is_empty

    @pytest.mark.asyncio
    async def test_batch_failing_after_terminate_is_delivered_on_stop(self, config, page, scheduler):
        transport = GatedTransport(failures=1)
        client = PixelClient(
            config=config, page=page, transport=transport, scheduler=scheduler,
            resolver=LocationResolver(lookup=lisbon), clock=scheduler.now,
        )
        await client.start(track_page_view=False)
        click = client.track(EventType.CLICK, {"n": 1})
        pending = asyncio.create_task(client.flush())
        await asyncio.sleep(0)

        client.terminate()
        assert [[e.type for e in batch] for batch in transport.beacons] == [["session_end"]]

        transport.gate.set()
        assert not await pending
        assert client.queue.snapshot() == [click]

        await client.stop()

        assert transport.beacons[-1] == [click]
        assert client.queue.is_empty
        assert transport.closed

    @pytest.mark.asyncio
    async def test_context_manager(self, client, transport):
        async with client:
            assert client.state == ClientState.ACTIVE
        assert client.state == ClientState.ENDED


class TestDebugState:
    def test_requires_debug(self, client):
        with pytest.raises(PixelError):
            client.debug_state()

    @pytest.mark.asyncio
    async def test_exposes_internals(self, page, scheduler, transport):
        client = PixelClient(
            config=PixelConfig(debug=True, collector_url=""),
            page=page,
            transport=transport,
            scheduler=scheduler,
            resolver=LocationResolver(lookup=lisbon),
        )
        client.track(EventType.CLICK, {"label": "x"})
        await client.location()

        state = client.debug_state()

        assert state["session_id"] == client.session_id
        assert state["state"] == "bootstrapping"
        assert state["queue"][0]["data"] == {"label": "x"}
        assert state["location"]["country"] == "Portugal"
        assert state["stats"]["queue_size"] == 1
