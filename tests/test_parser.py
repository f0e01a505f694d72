import json

import pytest

from viralize.director.parser import ScriptParser

RAW = {
    "title": "Prueba",
    "seoKeywords": ["uno"],
    "scenes": [
        {"id": 1, "duration": 2.5, "narration": "Hola", "overlayText": "HOLA", "imageKeyword": "sol", "isCta": False},
        {"id": 2, "duration": 3, "narration": "Chau", "overlayText": "CHAU", "imageKeyword": "luna"},
    ],
}


def test_parses_markdown_fenced_json():
    text = "Aquí está tu guión:\n```json\n" + json.dumps(RAW) + "\n```\nSuerte!"
    script = ScriptParser().parse(text)
    assert script.title == "Prueba"
    assert [s.id for s in script.scenes] == [1, 2]
    assert script.scenes[0].overlay_text == "HOLA"
    assert script.scenes[1].image_keyword == "luna"
    assert script.seo_keywords == ["uno"]
    assert script.total_duration == pytest.approx(5.5)


def test_accepts_dict_and_bytes():
    parser = ScriptParser()
    assert parser.parse(RAW).title == "Prueba"
    assert parser.parse(json.dumps(RAW).encode("utf-8")).title == "Prueba"


def test_accepts_snake_case_fields():
    raw = {"title": "x", "scenes": [{"id": 1, "duration": 1, "overlay_text": "A", "image_keyword": "b"}]}
    scene = ScriptParser().parse(raw).scenes[0]
    assert scene.overlay_text == "A"
    assert scene.image_keyword == "b"


def test_invalid_json_raises_value_error():
    with pytest.raises(ValueError):
        ScriptParser().parse("{esto no es json")


@pytest.mark.parametrize(
    "scenes",
    [
        [],
        [{"id": 1, "duration": 0}],
        [{"id": 1, "duration": -2}],
        [{"id": 1, "duration": 1}, {"id": 1, "duration": 2}],
    ],
)
def test_schema_violations_raise_value_error(scenes):
    with pytest.raises(ValueError):
        ScriptParser().parse({"title": "x", "scenes": scenes})


def test_scenes_are_immutable():
    script = ScriptParser().parse(RAW)
    with pytest.raises(Exception):
        script.scenes[0].duration = 10
