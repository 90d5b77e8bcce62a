import json
from types import SimpleNamespace

import pytest

from fakes import make_store

from explainer.errors import PlanGenerationError, ProviderNotConfiguredError
from explainer.llm import PlanGenerator, build_planning_prompt, extract_response_text, parse_plan
from explainer.planning import build_plan_files, generate_mock_plan, store_plan_files


def test_mock_plan_shape() -> None:
    plan = generate_mock_plan("Tea")
    assert len(plan.dialogue_inputs) == 8
    assert len(plan.beats) == 6
    assert [beat.planned_frames for beat in plan.beats] == [2, 3, 4, 3, 3, 2]
    assert [beat.index for beat in plan.beats] == [1, 2, 3, 4, 5, 6]
    assert plan.timeline_skeleton.total_duration == 180
    assert plan.timeline_skeleton.beat_timings[-1].end_time == 178
    assert "Tea" in plan.dialogue_inputs[0].text
    assert plan.beats[0].on_screen_text == "Understanding Tea"
    assert plan.style_bible_min.color_palette[-1] == "#ffffff"


def test_plan_serializes_with_camel_case_keys() -> None:
    payload = json.loads(generate_mock_plan("Tea").model_dump_json(by_alias=True))
    assert set(payload) == {"dialogueInputs", "beats", "styleBibleMin", "timelineSkeleton"}
    assert payload["beats"][0]["plannedFrames"] == 2
    assert payload["timelineSkeleton"]["beatTimings"][0] == {"beatIndex": 1, "startTime": 0, "endTime": 20}


def test_build_and_store_plan_files() -> None:
    plan = generate_mock_plan("Tea")
    files = build_plan_files("Tea", plan)
    assert files.project_plan.version == "1.0"
    assert files.project_plan.total_duration == 180
    assert files.style_bible.mood == plan.style_bible_min.mood

    store, client = make_store()
    stored = store_plan_files(store, "p1", files)
    assert stored.project_plan_key == "projects/p1/plan/ProjectPlan.json"
    assert stored.style_bible_key == "projects/p1/plan/StyleBible.min.json"

    document = json.loads(client.objects[stored.project_plan_key][0])
    assert document["topic"] == "Tea"
    assert document["version"] == "1.0"
    assert "createdAt" in document
    style = json.loads(client.objects[stored.style_bible_key][0])
    assert set(style) == {"visualStyle", "colorPalette", "typography", "mood", "createdAt", "version"}
    assert len(stored.project_plan_bytes) == len(client.objects[stored.project_plan_key][0])


def test_prompt_embeds_topic() -> None:
    prompt = build_planning_prompt("Quantum computing")
    assert "Topic: Quantum computing" in prompt
    assert '"dialogueInputs"' in prompt


def test_extract_response_text_prefers_output_text() -> None:
    response = SimpleNamespace(output_text='{"a": 1}', output=[])
    assert extract_response_text(response) == '{"a": 1}'


def test_extract_response_text_falls_back_to_message_content() -> None:
    response = SimpleNamespace(
        output_text="",
        output=[
            SimpleNamespace(type="reasoning", content=None),
            SimpleNamespace(type="message", content=[SimpleNamespace(text='{"b": 2}')]),
        ],
    )
    assert extract_response_text(response) == '{"b": 2}'


def test_parse_plan_rejects_bad_json_and_bad_shape() -> None:
    with pytest.raises(PlanGenerationError, match="Invalid JSON"):
        parse_plan("not json")
    with pytest.raises(PlanGenerationError, match="Invalid plan structure"):
        parse_plan(json.dumps({"dialogueInputs": [], "beats": []}))


def test_generator_parses_model_output() -> None:
    expected = generate_mock_plan("Bread")
    calls = []

    def create(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(output_text=expected.model_dump_json(by_alias=True), output=[])

    client = SimpleNamespace(responses=SimpleNamespace(create=create))
    generator = PlanGenerator("", "gpt-test", client=client)
    plan = generator.generate("Bread")
    assert plan == expected
    assert calls[0]["model"] == "gpt-test"
    assert "Topic: Bread" in calls[0]["input"]


def test_generator_without_output_text_fails() -> None:
    client = SimpleNamespace(responses=SimpleNamespace(create=lambda **_: SimpleNamespace(output_text=None, output=[])))
    with pytest.raises(PlanGenerationError, match="No valid text response"):
        PlanGenerator("", "gpt-test", client=client).generate("Bread")


def test_generator_without_key_is_not_configured() -> None:
    generator = PlanGenerator("", "gpt-test")
    assert generator.configured is False
    assert generator.check_connection() is False
    with pytest.raises(ProviderNotConfiguredError):
        generator.generate("Bread")


def test_parse_plan_rejects_repeated_indices() -> None:
    payload = json.loads(generate_mock_plan("Tea").model_dump_json(by_alias=True))
    payload["beats"][1]["index"] = payload["beats"][0]["index"]
    with pytest.raises(PlanGenerationError, match="duplicate beats index 1"):
        parse_plan(json.dumps(payload))

    payload = json.loads(generate_mock_plan("Tea").model_dump_json(by_alias=True))
    payload["dialogueInputs"][2]["index"] = 0
    with pytest.raises(PlanGenerationError, match="duplicate dialogueInputs index 0"):
        parse_plan(json.dumps(payload))
