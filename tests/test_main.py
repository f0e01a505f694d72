import pytest

from viralize.config import ENV_OVERRIDES
from viralize.main import DEMO_SCRIPT, build_parser, main
from viralize.director.parser import ScriptParser


@pytest.fixture(autouse=True)
def isolated(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)


def test_parser_subcommands():
    parser = build_parser()
    args = parser.parse_args(["render", "guion.json", "--backend", "remote", "--srt"])
    assert args.command == "render"
    assert args.backend == "remote"
    assert args.srt is True

    args = parser.parse_args(["serve", "--port", "8080"])
    assert args.port == 8080
    assert args.host == "127.0.0.1"

    with pytest.raises(SystemExit):
        parser.parse_args(["render", "x.json", "--backend", "nube"])


def test_demo_script_is_valid():
    script = ScriptParser().parse(DEMO_SCRIPT)
    assert len(script.scenes) == 3
    assert script.total_duration == 11


def test_missing_script_file_exits_with_2(tmp_path):
    assert main(["render", str(tmp_path / "no-existe.json")]) == 2


def test_invalid_script_exits_with_2(tmp_path):
    path = tmp_path / "malo.json"
    path.write_text('{"title": "x"}', encoding="utf-8")
    assert main(["render", str(path), "--output-dir", str(tmp_path / "out")]) == 2
