import asyncio
import uuid

import pytest

from videochat.client.base import DeviceUnavailable, PermissionDenied
from videochat.client.driver import DEVICE_MESSAGE, PERMISSION_MESSAGE, DriverState, NegotiationDriver
from videochat.services.broker import SignalingBroker

from fakes import (
    BrokerChannel,
    FakeCapture,
    FakeChannel,
    FakePeerConnection,
    FakeTranscriber,
    eventually,
)

pytestmark = pytest.mark.anyio


def make_driver(channel=None, capture=None, transcriber=None, name="pc"):
    pcs = []

    def factory():
        pc = FakePeerConnection(name)
        pcs.append(pc)
        return pc

    driver = NegotiationDriver(channel or FakeChannel(), capture or FakeCapture(), factory, transcriber)
    return driver, pcs


async def test_start_attaches_local_tracks():
    driver, pcs = make_driver()

    assert await driver.start()

    assert driver.state is DriverState.NEGOTIATING
    assert driver.error is None
    assert [t.kind for t in pcs[0].tracks] == ["audio", "video"]


async def test_permission_denied_sets_error_and_retry_recovers():
    capture = FakeCapture(error=PermissionDenied("blocked"))
    driver, pcs = make_driver(capture=capture)

    assert not await driver.start()
    assert driver.error == PERMISSION_MESSAGE
    assert driver.state is DriverState.IDLE
    assert pcs == []

    capture.error = None
    assert await driver.retry()
    assert driver.error is None
    assert driver.state is DriverState.NEGOTIATING
    assert capture.calls == 2


async def test_device_unavailable_uses_generic_message():
    driver, _ = make_driver(capture=FakeCapture(error=DeviceUnavailable("no camera")))

    assert not await driver.start()
    assert driver.error == DEVICE_MESSAGE


async def test_create_room_sends_join_with_fresh_id():
    channel = FakeChannel()
    driver, _ = make_driver(channel)

    room_id = await driver.create_room()

    uuid.UUID(room_id)
    assert driver.room_id == room_id
    assert channel.sent == [{"type": "join", "roomId": room_id}]


async def test_join_room_requires_an_id():
    channel = FakeChannel()
    driver, _ = make_driver(channel)

    assert not await driver.join_room("")
    assert channel.sent == []

    assert await driver.join_room("abc")
    assert channel.sent == [{"type": "join", "roomId": "abc"}]


async def test_peer_joined_triggers_offer():
    channel = FakeChannel()
    driver, pcs = make_driver(channel, name="a")
    await driver.start()
    await driver.join_room("abc")

    await driver.handle({"type": "peer-joined"})

    offer = {"type": "offer", "sdp": "a-offer"}
    assert pcs[0].local == offer
    assert channel.sent[-1] == {"type": "offer", "offer": offer, "roomId": "abc"}


async def test_peer_joined_before_media_is_ignored():
    channel = FakeChannel()
    driver, _ = make_driver(channel)
    await driver.join_room("abc")

    await driver.handle({"type": "peer-joined"})

    assert channel.sent == [{"type": "join", "roomId": "abc"}]


async def test_offer_is_answered():
    channel = FakeChannel()
    driver, pcs = make_driver(channel, name="b")
    await driver.start()
    await driver.join_room("abc")

    remote_offer = {"type": "offer", "sdp": "remote"}
    await driver.handle({"type": "offer", "offer": remote_offer})

    answer = {"type": "answer", "sdp": "b-answer"}
    assert pcs[0].remote == remote_offer
    assert pcs[0].local == answer
    assert channel.sent[-1] == {"type": "answer", "answer": answer, "roomId": "abc"}


async def test_answer_sets_remote_description_only():
    channel = FakeChannel()
    driver, pcs = make_driver(channel)
    await driver.start()

    await driver.handle({"type": "answer", "answer": {"type": "answer", "sdp": "remote"}})

    assert pcs[0].remote == {"type": "answer", "sdp": "remote"}
    assert channel.sent == []


async def test_remote_and_local_candidates():
    channel = FakeChannel()
    driver, pcs = make_driver(channel)
    await driver.start()
    await driver.join_room("abc")
    candidate = {"candidate": "candidate:1 1 udp 1 10.0.0.1 9 typ host", "sdpMid": "0", "sdpMLineIndex": 0}

    await driver.handle({"type": "candidate", "candidate": candidate})
    assert pcs[0].candidates == [candidate]

    await pcs[0].on_ice_candidate(candidate)
    assert channel.sent[-1] == {"type": "candidate", "candidate": candidate, "roomId": "abc"}


async def test_unknown_messages_are_ignored():
    channel = FakeChannel()
    driver, pcs = make_driver(channel)
    await driver.start()

    await driver.handle({"type": "user-connected"})
    await driver.handle({"nope": 1})

    assert channel.sent == []
    assert pcs[0].remote is None


async def test_connected_state_and_remote_track():
    driver, pcs = make_driver()
    await driver.start()

    pcs[0].on_track("remote-video")
    await pcs[0].on_connection_state("connecting")
    assert driver.state is DriverState.NEGOTIATING
    await pcs[0].on_connection_state("connected")

    assert driver.state is DriverState.CONNECTED
    assert driver.remote_tracks == ["remote-video"]


async def test_caption_follows_transcriber():
    transcriber = FakeTranscriber()
    driver, _ = make_driver(transcriber=transcriber)
    await driver.start()

    transcriber.on_text("hello there")

    assert driver.caption == "hello there"


async def test_close_runs_every_step_even_when_one_fails():
    channel = FakeChannel()
    channel.close_error = ConnectionError("already gone")
    capture = FakeCapture()
    transcriber = FakeTranscriber()
    driver, pcs = make_driver(channel, capture, transcriber)
    await driver.start()
    pcs[0].close_error = RuntimeError("boom")

    await driver.close()

    assert channel.closed
    assert pcs[0].closed
    assert transcriber.stopped
    assert capture.media.stopped
    assert all(t.stopped for t in capture.media.tracks)
    assert driver.state is DriverState.CLOSED

    channel.closed = False
    await driver.close()
    assert not channel.closed


async def test_run_handles_messages_in_order():
    offer = {"type": "offer", "sdp": "remote"}
    candidate = {"candidate": "candidate:1 1 udp 1 10.0.0.1 9 typ host"}
    channel = FakeChannel(incoming=[
        {"type": "offer", "offer": offer},
        {"type": "candidate", "candidate": candidate},
    ])
    driver, pcs = make_driver(channel)
    await driver.start()

    await driver.run()

    assert pcs[0].remote == offer
    assert pcs[0].candidates == [candidate]
    assert [m["type"] for m in channel.sent] == ["answer"]


async def test_two_drivers_negotiate_through_broker():
    broker = SignalingBroker()
    a_channel = await BrokerChannel(broker).open()
    b_channel = await BrokerChannel(broker).open()
    a, a_pcs = make_driver(a_channel, name="a")
    b, b_pcs = make_driver(b_channel, name="b")
    await a.start()
    await b.start()

    room_id = await a.create_room()
    runners = [asyncio.create_task(a.run()), asyncio.create_task(b.run())]
    await b.join_room(room_id)

    await eventually(lambda: a_pcs[0].remote is not None)
    assert b_pcs[0].remote == {"type": "offer", "sdp": "a-offer"}
    assert a_pcs[0].remote == {"type": "answer", "sdp": "b-answer"}

    await a_pcs[0].on_ice_candidate({"candidate": "candidate:a"})
    await b_pcs[0].on_ice_candidate({"candidate": "candidate:b"})
    await eventually(lambda: a_pcs[0].candidates and b_pcs[0].candidates)
    assert b_pcs[0].candidates == [{"candidate": "candidate:a"}]
    assert a_pcs[0].candidates == [{"candidate": "candidate:b"}]

    await a.close()
    await b.close()
    await asyncio.wait_for(asyncio.gather(*runners), timeout=1)
    assert len(broker.registry) == 0
    await broker.shutdown()


async def test_failed_message_does_not_stop_the_loop():
    offer = {"type": "offer", "sdp": "remote"}
    channel = FakeChannel(incoming=[
        {"type": "candidate", "candidate": "garbage"},
        {"type": "offer", "offer": offer},
    ])
    driver, pcs = make_driver(channel, name="b")
    await driver.start()
    await driver.join_room("abc")
    pcs[0].candidate_error = ValueError("bad candidate")

    await driver.run()

    assert pcs[0].remote == offer
    assert channel.sent[-1] == {"type": "answer", "answer": {"type": "answer", "sdp": "b-answer"}, "roomId": "abc"}
