from llm_race.main import _parse_args, build_request, main


def test_build_request_from_arguments():
    args = _parse_args([
        "what", "is", "2+2",
        "-m", "openai/gpt-4o",
        "-m", "anthropic/claude-sonnet-4-20250514",
        "--id", "math",
        "--cache",
    ])

    request = build_request(args)

    assert request.content == "what is 2+2"
    assert request.is_multi
    assert request.id == "math"
    assert request.is_cached
    assert [m.provider for m in request.models] == ["openai", "anthropic"]


def test_invalid_model_identifier_exits_with_error(caplog):
    assert main(["hello", "-m", "gpt-4o"]) == 1
    assert "provider/model" in caplog.text


def test_cache_can_be_switched_off(monkeypatch):
    monkeypatch.setattr("llm_race.main.CACHE_ENABLED", True)

    args = _parse_args(["hi", "-m", "openai/gpt-4o", "--no-cache"])

    assert build_request(args).is_cached is False
