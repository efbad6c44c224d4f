"""Tests for zotlink.cli — argument parsing and command dispatch."""

import json
import logging
from datetime import date

import anyio
import pytest

import zotlink.cli
from zotlink.cli import _dispatch, _emit, build_parser, main, setup_logging
from zotlink.models import CiteKey, CiteKeyExport, CiteKeySnapshot, Group, Result
from zotlink.ports import Database, DatabaseWithPort


class StubClient:
    """Records calls; returns canned results."""

    def __init__(self):
        self.calls = []

    async def is_running(self):
        return True

    async def search(self, term):
        self.calls.append(("search", term))
        return Result.of([{"citekey": "xu2022"}])

    async def get_bibliography(self, keys, style, fmt):
        self.calls.append(("bib", keys, style, fmt))
        return Result.of("Xu (2022)")

    async def get_issue_date(self, key, as_string):
        self.calls.append(("date", key, as_string))
        return Result.of("2020-03" if as_string else date(2020, 3, 1))

    async def list_groups(self):
        return Result.failed("Error listing libraries: down")

    async def get_all_citekeys(self, force=False):
        self.calls.append(("citekeys", force))
        return CiteKeySnapshot([CiteKeyExport(1, "a", "A")], from_cache=True)


def _run(argv):
    args = build_parser().parse_args(argv)
    stub = StubClient()
    code = anyio.run(_dispatch, stub, args)
    return code, stub


class TestParser:
    def test_requires_command(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_globals(self):
        args = build_parser().parse_args(["--database", "jurism", "--port", "5", "--library", "3", "groups"])
        assert args.database == "jurism"
        assert args.port == 5
        assert args.library == 3


class TestDispatch:
    def test_search(self, capsys):
        code, stub = _run(["search", "quantum"])
        assert code == 0
        assert stub.calls == [("search", "quantum")]
        assert json.loads(capsys.readouterr().out) == [{"citekey": "xu2022"}]

    def test_bib_uses_library_and_style(self, capsys):
        code, stub = _run(["--library", "4", "bib", "a", "b", "--style", "apa"])
        assert code == 0
        assert stub.calls == [("bib", [CiteKey("a", 4), CiteKey("b", 4)], "apa", "markdown")]
        assert capsys.readouterr().out == "Xu (2022)\n"

    def test_bib_html(self):
        _, stub = _run(["bib", "a", "--html"])
        assert stub.calls[0][3] == "html"

    def test_date_calendar(self, capsys):
        code, stub = _run(["date", "xu2022", "--calendar"])
        assert code == 0
        assert stub.calls == [("date", CiteKey("xu2022", 1), False)]
        assert json.loads(capsys.readouterr().out) == "2020-03-01"

    def test_failure_exit_code(self, capsys):
        code, _ = _run(["groups"])
        assert code == 1
        assert "down" in capsys.readouterr().err

    def test_citekeys(self, capsys):
        code, stub = _run(["citekeys", "--force"])
        assert code == 0
        assert stub.calls == [("citekeys", True)]
        out = json.loads(capsys.readouterr().out)
        assert out == {"citekeys": [{"libraryID": 1, "citekey": "a", "title": "A"}], "fromCache": True}

    def test_ping(self, capsys):
        code, _ = _run(["ping"])
        assert code == 0
        assert capsys.readouterr().out.strip() == "ready"


class TestEmit:
    def test_dataclasses_serialized(self, capsys):
        assert _emit(Result.of([Group(1, "My Library")])) == 0
        assert json.loads(capsys.readouterr().out) == [{"id": 1, "name": "My Library"}]

    def test_missing(self, capsys):
        assert _emit(Result.missing()) == 1
        assert "Nothing found" in capsys.readouterr().err


class TestMain:
    @pytest.fixture(autouse=True)
    def _home(self, tmp_path, monkeypatch):
        home = tmp_path / "home"
        monkeypatch.setattr(zotlink.cli, "home_dir", lambda: home)
        monkeypatch.delenv("ZOTLINK_DATABASE", raising=False)
        monkeypatch.delenv("ZOTLINK_PORT", raising=False)
        yield home
        setup_logging()

    def test_init_config(self, tmp_path, capsys):
        target = tmp_path / "zl" / "config.yaml"
        assert main(["--config", str(target), "init-config"]) == 0
        assert target.exists()

    def test_init_config_keeps_file_name(self, tmp_path, capsys):
        target = tmp_path / "work.yaml"
        assert main(["--config", str(target), "init-config"]) == 0
        assert target.exists()
        assert not (tmp_path / "config.yaml").exists()
        assert capsys.readouterr().out.strip() == str(target)

    def test_logs_to_home_by_default(self, _home, tmp_path, capsys):
        main(["--config", str(tmp_path / "c.yaml"), "init-config"])
        assert (_home / "zotlink.log").exists()

    def test_target_from_config_with_overrides(self, tmp_path, monkeypatch):
        seen = []

        class RecordingClient:
            def __init__(self, target, **kwargs):
                seen.append(target)

            async def __aenter__(self):
                return self

            async def __aexit__(self, *exc):
                pass

            async def is_running(self):
                return True

        monkeypatch.setattr(zotlink.cli, "BBTClient", RecordingClient)
        cfg = tmp_path / "config.yaml"
        cfg.write_text("database: Juris-M\nport: 5000\n")
        assert main(["--config", str(cfg), "ping"]) == 0
        assert main(["--config", str(cfg), "--port", "6000", "ping"]) == 0
        assert seen == [
            DatabaseWithPort(Database.JURIS_M, 5000),
            DatabaseWithPort(Database.JURIS_M, 6000),
        ]

    def test_bad_config_exit_code(self, tmp_path, capsys):
        target = tmp_path / "config.yaml"
        target.write_text("- not a mapping\n")
        assert main(["--config", str(target), "groups"]) == 2
        assert "mapping" in capsys.readouterr().err


class TestLogging:
    def test_setup_logging_file(self, tmp_path):
        log_file = tmp_path / "logs" / "zotlink.log"
        setup_logging(verbose=True, log_file=log_file)
        logging.getLogger("zotlink.test").info("hello")
        for h in logging.getLogger("zotlink").handlers:
            h.flush()
        assert "hello" in log_file.read_text()
        setup_logging()
