import asyncio

import pytest

from llm_race.cancellation import CancellationBroker
from llm_race.errors import ConfigurationError
from llm_race.models import RunnerStatus, Target
from llm_race.race import RaceOrchestrator

from .helpers import FakeOpener, fragments_stream, make_renderer, transport_error

MESSAGES = [{"role": "user", "content": "Say hello"}]
GPT = Target("openai", "gpt-4o", "openai")
DEEPSEEK = Target("deepseek", "deepseek-chat", "openai")
CLAUDE = Target("openrouter", "anthropic/claude-3.5-haiku", "openai")


def run_race(streams, targets, broker=None, timeout=None, cancel_after=None):
    renderer, buffer = make_renderer()
    broker = broker or CancellationBroker()
    orchestrator = RaceOrchestrator(renderer, broker, FakeOpener(streams), timeout=timeout)

    async def _run():
        if cancel_after is not None:
            asyncio.get_running_loop().call_later(cancel_after, broker.fire)
        return await orchestrator.run(MESSAGES, targets)

    outcome = asyncio.run(_run())
    return outcome, orchestrator.state, buffer.getvalue()


def test_first_fragment_wins_leadership():
    streams = {
        GPT.key: fragments_stream(["Hel", "lo"], delays=[0.1, 0]),
        DEEPSEEK.key: fragments_stream(["Bonjour"], delays=[0.05]),
    }

    outcome, race, output = run_race(streams, [GPT, DEEPSEEK])

    assert race.leader_index == 1
    assert output.index("deepseek (deepseek-chat):") < output.index("Bonjour")
    assert output.index("Bonjour") < output.index("openai (gpt-4o):") < output.index("Hello")
    assert output.count("deepseek (deepseek-chat):") == 1
    assert "[2/2 models responded in" in output
    assert outcome.successful == 2
    assert [r.text for r in outcome.results] == ["Hello", "Bonjour"]


def test_blank_fragments_do_not_claim_leadership():
    streams = {
        GPT.key: fragments_stream(["\n", "late"], delays=[0.01, 0.1]),
        DEEPSEEK.key: fragments_stream(["early"], delays=[0.05]),
    }

    outcome, race, _ = run_race(streams, [GPT, DEEPSEEK])

    assert race.leader_index == 1
    assert outcome.results[0].text == "\nlate"


def test_single_target_error_does_not_stop_race():
    streams = {
        GPT.key: fragments_stream(["one"], delays=[0.02]),
        DEEPSEEK.key: transport_error("connection refused"),
        CLAUDE.key: fragments_stream(["three"], delays=[0.04]),
    }

    outcome, race, output = run_race(streams, [GPT, DEEPSEEK, CLAUDE])

    assert [state.status for state in race.runners] == [
        RunnerStatus.DONE, RunnerStatus.ERRORED, RunnerStatus.DONE,
    ]
    assert race.leader_index == 0
    assert "Error: connection refused" in output
    assert "failed:" in output
    assert "three" in output
    assert "[2/3 models responded in" in output
    assert outcome.results[1].error == "connection refused"
    assert outcome.results[1].text is None


def test_cancellation_before_any_fragment_prints_nothing():
    streams = {
        GPT.key: fragments_stream(["slow"], delays=[1]),
        DEEPSEEK.key: (1, fragments_stream(["slower"])),
    }

    outcome, race, output = run_race(streams, [GPT, DEEPSEEK], cancel_after=0.01)

    assert outcome is None
    assert output == ""
    assert race.leader_index is None
    assert all(state.status is RunnerStatus.ABORTED for state in race.runners)
    assert race.settled_count == 2


def test_cancellation_mid_race_skips_summary():
    streams = {
        GPT.key: fragments_stream(["live ", "never"], delays=[0.01, 1]),
        DEEPSEEK.key: fragments_stream(["hidden"], delays=[1]),
    }

    outcome, race, output = run_race(streams, [GPT, DEEPSEEK], cancel_after=0.05)

    assert outcome is None
    assert "live" in output
    assert "never" not in output
    assert "hidden" not in output
    assert "models responded" not in output
    assert race.runners[0].text == "live "


def test_firing_twice_is_the_same_as_once():
    broker = CancellationBroker()
    streams = {GPT.key: fragments_stream(["x"], delays=[1]), DEEPSEEK.key: fragments_stream(["y"], delays=[1])}
    renderer, buffer = make_renderer()
    orchestrator = RaceOrchestrator(renderer, broker, FakeOpener(streams))
    fired = []

    async def _run():
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, lambda: fired.append(broker.fire()))
        loop.call_later(0.02, lambda: fired.append(broker.fire()))
        outcome = await orchestrator.run(MESSAGES, [GPT, DEEPSEEK])
        await asyncio.sleep(0.03)
        return outcome

    assert asyncio.run(_run()) is None
    assert fired == [True, False]
    assert buffer.getvalue() == ""


def test_non_leaders_print_in_target_order():
    streams = {
        GPT.key: fragments_stream(["first-target"], delays=[0.08]),
        DEEPSEEK.key: fragments_stream(["leader"], delays=[0.01]),
        CLAUDE.key: fragments_stream(["third-target"], delays=[0.03]),
    }

    _, race, output = run_race(streams, [GPT, DEEPSEEK, CLAUDE])

    assert race.leader_index == 1
    assert output.index("first-target") < output.index("third-target")
    assert "Waiting for 2 more models..." in output


def test_timeout_aborts_one_target_and_race_concludes():
    streams = {
        GPT.key: fragments_stream(["quick"], delays=[0.01]),
        DEEPSEEK.key: fragments_stream(["stuck"], delays=[5]),
    }

    outcome, race, output = run_race(streams, [GPT, DEEPSEEK], timeout=0.1)

    assert race.runners[1].status is RunnerStatus.ABORTED
    assert "timed out after 0.1s" in output
    assert "[1/2 models responded in" in output
    assert outcome.results[1].error == "timed out after 0.1s"


def test_leader_failure_is_reported_at_its_section():
    class FailingAfterFirst:
        def __init__(self):
            self.closed = False

        def __aiter__(self):
            return self._events()

        async def _events(self):
            yield {"choices": [{"delta": {"content": "start"}}]}
            yield {"error": {"message": "upstream reset", "code": "server_error"}}

        async def aclose(self):
            self.closed = True

    streams = {
        GPT.key: FailingAfterFirst(),
        DEEPSEEK.key: fragments_stream(["fine"], delays=[0.05]),
    }

    outcome, race, output = run_race(streams, [GPT, DEEPSEEK])

    assert race.leader_index == 0
    assert race.runners[0].status is RunnerStatus.ERRORED
    assert "Error: upstream reset (server_error)" in output
    assert "[1/2 models responded in" in output


def test_all_targets_failing_leaves_no_leader():
    streams = {GPT.key: transport_error("down"), DEEPSEEK.key: transport_error("also down", 503)}

    outcome, race, output = run_race(streams, [GPT, DEEPSEEK])

    assert race.leader_index is None
    assert output.count("Error:") == 2
    assert "Error: also down (503)" in output
    assert "[0/2 models responded in" in output
    assert outcome.successful == 0


def test_exactly_one_leader_across_many_targets():
    targets = [Target("openai", f"model-{i}", "openai") for i in range(6)]
    streams = {t.key: fragments_stream(["a", "b"], delays=[0, 0]) for t in targets}

    outcome, race, output = run_race(streams, targets)

    assert race.leader_index is not None
    headers = [line for line in output.splitlines() if line.startswith("openai (")]
    assert len(headers) == 6
    assert all(result.text == "ab" for result in outcome.results)


def test_duplicate_targets_are_rejected():
    with pytest.raises(ConfigurationError):
        run_race({GPT.key: fragments_stream(["x"])}, [GPT, Target("openai", "gpt-4o")])


def test_misconfigured_transport_propagates():
    untagged = Target("custom", "thing")
    streams = {GPT.key: fragments_stream(["x"], delays=[1]), untagged.key: object()}

    with pytest.raises(ConfigurationError):
        run_race(streams, [GPT, untagged])


def test_cancelled_before_start_still_settles_every_runner():
    broker = CancellationBroker()
    broker.fire()
    streams = {GPT.key: fragments_stream(["x"]), DEEPSEEK.key: fragments_stream(["y"])}

    outcome, race, output = run_race(streams, [GPT, DEEPSEEK], broker=broker)

    assert outcome is None
    assert output == ""
    assert race.settled_count == 2
    assert all(state.status is RunnerStatus.ABORTED for state in race.runners)


def test_transport_timeout_without_deadline_fails_only_that_target():
    streams = {
        GPT.key: fragments_stream(["ok"]),
        DEEPSEEK.key: TimeoutError("connect timed out"),
    }

    outcome, race, output = run_race(streams, [GPT, DEEPSEEK])

    assert race.runners[0].status is RunnerStatus.DONE
    assert race.runners[1].status is RunnerStatus.ERRORED
    assert "Error: connect timed out (timeout)" in output
    assert "[1/2 models responded in" in output
    assert outcome.successful == 1
