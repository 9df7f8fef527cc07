import asyncio
import pytest

from vox.core.config import PlaybackConfig
from vox.core.store import ConfigStore
from vox.orchestrator.events import Event
from vox.orchestrator.pipeline import PlaybackPipeline
from vox.orchestrator.router import EventRouter
from vox.orchestrator.session import ChunkStatus
from vox.orchestrator.state import PlaybackState
from vox.tests.fakes import FakePlayer, FakeSynthesizer, wait_until

THREE_SENTENCES = "Hello world. This is a test! Are you sure?"
FOUR_SENTENCES = "First sentence here. Second sentence here. Third sentence here. Fourth sentence here."

def make_pipeline(tmp_path, synthesizer=None, player=None, router=None, store=None):
    config = PlaybackConfig(chunk_dir=str(tmp_path), eta_interval=0.05, done_linger=0.05)
    return PlaybackPipeline(
        synthesizer or FakeSynthesizer(),
        player or FakePlayer(),
        router=router,
        store=store,
        config=config,
    )

def chunk_files(tmp_path):
    return sorted(tmp_path.glob(".chunk_*"))

@pytest.mark.asyncio
async def test_pipeline_initial_state(tmp_path):
    pipeline = make_pipeline(tmp_path)
    assert pipeline.state == PlaybackState.STOPPED
    assert pipeline.progress == 0.0
    assert pipeline.eta_text == ""
    assert pipeline.last_error is None

@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   ", "[1] <br/> https://example.com"])
async def test_speak_with_nothing_to_say_is_a_noop(tmp_path, text):
    synth = FakeSynthesizer()
    player = FakePlayer()
    pipeline = make_pipeline(tmp_path, synth, player)

    assert await pipeline.speak(text) is False
    await asyncio.sleep(0.02)

    assert pipeline.state == PlaybackState.STOPPED
    assert pipeline.session is None
    assert pipeline.last_error is None
    assert synth.calls == []
    assert player.handles == []

@pytest.mark.asyncio
async def test_three_chunk_session_plays_in_order(tmp_path):
    synth = FakeSynthesizer()
    player = FakePlayer()
    pipeline = make_pipeline(tmp_path, synth, player)

    assert await pipeline.speak(THREE_SENTENCES) is True
    assert pipeline.state == PlaybackState.PLAYING
    assert pipeline.total_sentences == 3
    assert pipeline.word_count == 9

    h0 = await player.next_handle()
    assert h0.path.name.endswith("_0.wav")
    assert h0.path.exists()
    h0.finish()
    await wait_until(lambda: pipeline.current_index == 1)
    assert pipeline.progress == pytest.approx(1 / 3)
    assert not h0.path.exists()

    h1 = await player.next_handle()
    assert h1.path.name.endswith("_1.wav")
    h1.finish()
    h2 = await player.next_handle()
    assert h2.path.name.endswith("_2.wav")
    h2.finish()

    await wait_until(lambda: pipeline.state == PlaybackState.STOPPED)
    assert pipeline.progress == 1.0
    assert pipeline.current_index == 3
    assert pipeline.eta_text == "done"
    assert pipeline.session is None
    assert synth.texts == ["Hello world.", "This is a test!", "Are you sure?"]
    assert chunk_files(tmp_path) == []

    # The "done" marker clears itself shortly after
    await wait_until(lambda: pipeline.eta_text == "")
    await pipeline.close()

@pytest.mark.asyncio
async def test_generation_runs_ahead_of_playback(tmp_path):
    synth = FakeSynthesizer()
    player = FakePlayer()
    pipeline = make_pipeline(tmp_path, synth, player)

    await pipeline.speak(THREE_SENTENCES)
    h0 = await player.next_handle()

    # Chunk 0 is still playing while all three chunks get synthesized
    await wait_until(lambda: len(synth.calls) == 3 and pipeline.session.is_ready(2))
    assert pipeline.current_index == 0
    assert pipeline.session.generate_cursor >= pipeline.session.current_index
    assert len(chunk_files(tmp_path)) == 3
    assert len(player.handles) == 1

    h0.finish()
    await pipeline.close()

@pytest.mark.asyncio
async def test_session_uses_current_voice_and_speed(tmp_path):
    synth = FakeSynthesizer()
    pipeline = make_pipeline(tmp_path, synth)
    await pipeline.set_voice(2)
    await pipeline.set_speed(1.5)

    await pipeline.speak(THREE_SENTENCES)
    await wait_until(lambda: len(synth.calls) == 3)

    assert all(voice == 2 and speed == 1.5 for _, voice, speed, _ in synth.calls)
    await pipeline.close()

@pytest.mark.asyncio
async def test_toggle_pauses_and_resumes_same_file(tmp_path):
    player = FakePlayer()
    pipeline = make_pipeline(tmp_path, player=player)

    await pipeline.speak(THREE_SENTENCES)
    h0 = await player.next_handle()

    await pipeline.toggle()
    assert pipeline.state == PlaybackState.PAUSED
    assert h0.suspended
    assert pipeline.current_index == 0
    assert h0.path.exists()

    await pipeline.toggle()
    assert pipeline.state == PlaybackState.PLAYING
    assert not h0.suspended
    assert h0.resume_calls == 1
    # Resumed, not restarted
    assert len(player.handles) == 1

    h0.finish()
    await wait_until(lambda: pipeline.current_index == 1)
    await pipeline.close()

@pytest.mark.asyncio
async def test_paused_pipeline_does_not_start_next_chunk(tmp_path):
    player = FakePlayer()
    pipeline = make_pipeline(tmp_path, player=player)

    await pipeline.speak(THREE_SENTENCES)
    h0 = await player.next_handle()
    await pipeline.toggle()

    # The player happens to finish right as it is paused
    h0.finish()
    await wait_until(lambda: pipeline.current_index == 1)
    await asyncio.sleep(0.05)
    assert len(player.handles) == 1
    assert pipeline.state == PlaybackState.PAUSED

    await pipeline.toggle()
    h1 = await player.next_handle()
    assert h1.path.name.endswith("_1.wav")
    await pipeline.close()

@pytest.mark.asyncio
async def test_toggle_when_stopped_does_nothing(tmp_path):
    pipeline = make_pipeline(tmp_path)
    await pipeline.toggle()
    assert pipeline.state == PlaybackState.STOPPED

@pytest.mark.asyncio
async def test_stop_when_stopped_is_idempotent(tmp_path):
    pipeline = make_pipeline(tmp_path)
    await pipeline.stop()
    await pipeline.stop()
    assert pipeline.state == PlaybackState.STOPPED
    assert pipeline.eta_text == ""

@pytest.mark.asyncio
@pytest.mark.parametrize("pause_first", [False, True])
async def test_stop_while_active_tears_everything_down(tmp_path, pause_first):
    player = FakePlayer()
    pipeline = make_pipeline(tmp_path, player=player)

    await pipeline.speak(THREE_SENTENCES)
    h0 = await player.next_handle()
    if pause_first:
        await pipeline.toggle()
        assert pipeline.state == PlaybackState.PAUSED
    assert pipeline.eta_text != ""

    await pipeline.stop()

    assert pipeline.state == PlaybackState.STOPPED
    assert pipeline.session is None
    assert pipeline.eta_text == ""
    assert h0.terminated
    await wait_until(lambda: chunk_files(tmp_path) == [])
    await asyncio.sleep(0.05)
    assert len(player.handles) == 1
    await pipeline.close()

@pytest.mark.asyncio
async def test_stop_discards_in_flight_synthesis(tmp_path):
    synth = FakeSynthesizer()
    synth.gate = asyncio.Event()
    player = FakePlayer()
    pipeline = make_pipeline(tmp_path, synth, player)

    await pipeline.speak(THREE_SENTENCES)
    await wait_until(lambda: len(synth.calls) == 1)

    # stop() must not wait for the synthesis in flight
    await asyncio.wait_for(pipeline.stop(), timeout=0.5)
    synth.gate.set()
    await asyncio.sleep(0.05)

    assert len(synth.calls) == 1
    assert player.handles == []
    assert chunk_files(tmp_path) == []
    assert pipeline.state == PlaybackState.STOPPED
    await pipeline.close()

@pytest.mark.asyncio
async def test_synthesis_failure_stalls_remaining_chunks(tmp_path):
    synth = FakeSynthesizer(fail_at={2})
    player = FakePlayer()
    pipeline = make_pipeline(tmp_path, synth, player)

    await pipeline.speak(FOUR_SENTENCES)
    h0 = await player.next_handle()
    await wait_until(lambda: pipeline.last_error is not None)
    assert "exit 1" in pipeline.last_error

    # Chunks generated before the failure still play out in order
    h0.finish()
    h1 = await player.next_handle()
    assert h1.path.name.endswith("_1.wav")
    h1.finish()
    await wait_until(lambda: pipeline.current_index == 2)
    await asyncio.sleep(0.05)

    assert len(player.handles) == 2
    assert len(synth.calls) == 3
    assert pipeline.session.chunks[2].status == ChunkStatus.FAILED
    assert pipeline.session.chunks[3].status == ChunkStatus.PENDING
    assert pipeline.state == PlaybackState.PLAYING

    await pipeline.stop()
    assert pipeline.state == PlaybackState.STOPPED
    assert chunk_files(tmp_path) == []
    await pipeline.close()

@pytest.mark.asyncio
async def test_new_speak_clears_last_error(tmp_path):
    synth = FakeSynthesizer(fail_at={0})
    pipeline = make_pipeline(tmp_path, synth)

    await pipeline.speak(THREE_SENTENCES)
    await wait_until(lambda: pipeline.last_error is not None)

    synth.fail_at.clear()
    await pipeline.speak(THREE_SENTENCES)
    assert pipeline.last_error is None
    await pipeline.close()

@pytest.mark.asyncio
async def test_preflight_failure_is_reported(tmp_path):
    synth = FakeSynthesizer(preflight_error="TTS engine not found at /nowhere")
    pipeline = make_pipeline(tmp_path, synth)

    assert await pipeline.speak(THREE_SENTENCES) is False
    assert pipeline.state == PlaybackState.STOPPED
    assert pipeline.last_error == "TTS engine not found at /nowhere"
    assert synth.calls == []

@pytest.mark.asyncio
async def test_player_launch_failure_stalls_session(tmp_path):
    player = FakePlayer(fail=True)
    pipeline = make_pipeline(tmp_path, player=player)

    await pipeline.speak("Just one sentence to read.")
    await wait_until(lambda: pipeline.last_error is not None and "audio player" in pipeline.last_error)
    assert pipeline.state == PlaybackState.PLAYING
    assert pipeline.current_index == 0

    await pipeline.stop()
    assert chunk_files(tmp_path) == []
    await pipeline.close()

@pytest.mark.asyncio
async def test_new_speak_replaces_running_session(tmp_path):
    player = FakePlayer()
    pipeline = make_pipeline(tmp_path, player=player)

    await pipeline.speak(THREE_SENTENCES)
    old_session = pipeline.session
    h0 = await player.next_handle()

    await pipeline.speak("Another sentence entirely. And a second one here.")
    assert h0.terminated
    assert pipeline.session is not old_session
    assert pipeline.total_sentences == 2
    assert pipeline.current_index == 0

    h_new = await player.next_handle()
    assert pipeline.session.session_id[:8] in h_new.path.name
    await wait_until(lambda: not any(old_session.session_id[:8] in p.name for p in chunk_files(tmp_path)))
    await pipeline.close()

@pytest.mark.asyncio
async def test_session_updates_are_published(tmp_path):
    router = EventRouter()
    updates = []
    played = []

    async def on_update(update):
        updates.append(update)

    async def on_played(index):
        played.append(index)

    router.register(Event.SESSION_UPDATED, on_update)
    router.register(Event.CHUNK_PLAYED, on_played)
    player = FakePlayer()
    pipeline = make_pipeline(tmp_path, player=player, router=router)

    await pipeline.speak(THREE_SENTENCES)
    for _ in range(3):
        (await player.next_handle()).finish()
    await wait_until(lambda: pipeline.state == PlaybackState.STOPPED)

    assert played == [0, 1, 2]
    assert any(u.state == PlaybackState.PLAYING for u in updates)
    last = updates[-1]
    assert last.state == PlaybackState.STOPPED
    assert last.progress == 1.0
    assert last.total_sentences == 3
    await pipeline.close()

@pytest.mark.asyncio
async def test_eta_never_increases_while_playing(tmp_path):
    player = FakePlayer()
    pipeline = make_pipeline(tmp_path, player=player)
    text = " ".join(f"Sentence number {i} has a handful of extra words in it." for i in range(40))

    await pipeline.speak(text)
    seen = []
    for _ in range(5):
        seen.append(pipeline.session.spoken_words)
        (await player.next_handle()).finish()
        await wait_until(lambda: pipeline.current_index == len(seen))
    seen.append(pipeline.session.spoken_words)

    assert seen == sorted(seen)
    assert pipeline.eta_text.endswith("left")
    await pipeline.close()

@pytest.mark.asyncio
async def test_speed_and_voice_are_persisted(tmp_path):
    store = ConfigStore(tmp_path / "settings")
    pipeline = make_pipeline(tmp_path, store=store)

    await pipeline.set_speed(1.25)
    await pipeline.set_voice(7)
    assert store.load_speed() == 1.25
    assert store.load_voice_id() == 7

    with pytest.raises(ValueError):
        await pipeline.set_voice(99)
    with pytest.raises(ValueError):
        await pipeline.set_speed(0)

    reloaded = make_pipeline(tmp_path, store=store)
    assert reloaded.speed == 1.25
    assert reloaded.voice_id == 7

@pytest.mark.asyncio
async def test_failed_synthesis_of_stopped_session_leaves_no_file(tmp_path):
    synth = FakeSynthesizer(fail_at={0})
    synth.write_partial = True
    synth.gate = asyncio.Event()
    pipeline = make_pipeline(tmp_path, synth)

    await pipeline.speak(THREE_SENTENCES)
    await wait_until(lambda: len(synth.calls) == 1)
    await pipeline.stop()
    synth.gate.set()
    await asyncio.sleep(0.05)

    assert chunk_files(tmp_path) == []
    assert pipeline.last_error is None
    await pipeline.close()

@pytest.mark.asyncio
@pytest.mark.parametrize("value", [float("nan"), float("inf"), -1.0])
async def test_set_speed_rejects_non_finite(tmp_path, value):
    pipeline = make_pipeline(tmp_path)
    with pytest.raises(ValueError):
        await pipeline.set_speed(value)
    assert pipeline.speed == 1.0

@pytest.mark.asyncio
@pytest.mark.parametrize("stored", ["nan", "inf", "-inf"])
async def test_corrupt_stored_speed_falls_back_to_default(tmp_path, stored):
    (tmp_path / "speed").write_text(stored)
    synth = FakeSynthesizer()
    player = FakePlayer()
    pipeline = make_pipeline(tmp_path, synth, player, store=ConfigStore(tmp_path))

    assert await pipeline.speak("Hello world. This is a test!") is True
    assert pipeline.speed == 1.0
    assert pipeline.eta_text != ""

    (await player.next_handle()).finish()
    (await player.next_handle()).finish()
    await wait_until(lambda: pipeline.state == PlaybackState.STOPPED)
    assert all(speed == 1.0 for _, _, speed, _ in synth.calls)
    await pipeline.close()
