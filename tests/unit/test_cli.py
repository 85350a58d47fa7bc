"""Tests for the argparse command line.

Commands import their collaborators lazily, so get_engine and pull_mappings
are patched at their source modules.
"""
import json
from unittest.mock import AsyncMock, patch

import pytest

from pipesync.__main__ import main
from pipesync.db.store import load_mapping, load_state, save_mapping, save_state
from pipesync.models.sync import SyncResult

CONFIG = {
    "platform": "gmail",
    "connectionKey": "live::gmail::default::abc",
    "actionId": "conn_mod_def::list-messages",
    "request": {"path": "/users/me/messages"},
    "pagination": {
        "type": "cursor",
        "requestParam": "pageToken",
        "responseField": "nextPageToken",
        "itemsField": "messages",
    },
    "record": {"type": "email", "mapping": {"snippet": "snippet"}},
    "externalRef": {"system": "gmail", "idField": "id"},
}


@pytest.fixture(autouse=True)
def patched_engine(engine):
    with patch("pipesync.db.engine.get_engine", return_value=engine):
        yield engine


def _exit_code(argv):
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


class TestAdd:
    def test_add_from_json_string(self, engine, capsys):
        main(["add", "inbox", "--config", json.dumps(CONFIG)])

        mapping = load_mapping(engine, "inbox")
        assert mapping.platform == "gmail"
        assert mapping.pagination.items_field == "messages"
        err = capsys.readouterr().err
        assert "Added sync mapping: inbox" in err
        assert "Pagination: cursor" in err

    def test_add_from_file(self, engine, tmp_path):
        path = tmp_path / "inbox.json"
        path.write_text(json.dumps(CONFIG))
        main(["add", "inbox", "-f", str(path)])
        assert load_mapping(engine, "inbox").record.type == "email"

    def test_name_argument_wins(self, engine):
        main(["add", "inbox", "-c", json.dumps(dict(CONFIG, name="ignored"))])
        assert load_mapping(engine, "ignored") is None
        assert load_mapping(engine, "inbox") is not None

    def test_invalid_config_exits_1(self, engine, capsys):
        assert _exit_code(["add", "inbox", "-c", '{"platform": "gmail"}']) == 1
        assert "Invalid mapping config" in capsys.readouterr().err
        assert load_mapping(engine, "inbox") is None

    def test_malformed_json_exits_1(self, capsys):
        assert _exit_code(["add", "inbox", "-c", "{not json"]) == 1
        assert "Invalid mapping config" in capsys.readouterr().err

    def test_missing_config_file_exits_1(self, engine, tmp_path, capsys):
        missing = tmp_path / "nope.json"
        assert _exit_code(["add", "inbox", "-f", str(missing)]) == 1
        assert "Cannot read config file" in capsys.readouterr().err
        assert load_mapping(engine, "inbox") is None

    @pytest.mark.parametrize("payload", ["[1, 2]", '"text"', "42", "null"])
    def test_non_object_json_exits_1(self, payload, capsys):
        assert _exit_code(["add", "inbox", "-c", payload]) == 1
        assert "Invalid mapping config: expected a JSON object" in capsys.readouterr().err

    def test_config_required(self, capsys):
        assert _exit_code(["add", "inbox"]) == 1
        assert "--config" in capsys.readouterr().err


class TestUpdate:
    def test_replaces_existing(self, engine, mapping):
        save_mapping(engine, mapping)
        main(["update", mapping.name, "-c", json.dumps(CONFIG)])
        assert load_mapping(engine, mapping.name).platform == "gmail"

    def test_missing_exits_1(self, capsys):
        assert _exit_code(["update", "nope", "-c", json.dumps(CONFIG)]) == 1
        assert "Mapping not found: nope" in capsys.readouterr().err


class TestListShowStatus:
    def test_list_empty(self, capsys):
        main(["list"])
        assert "No sync mappings configured." in capsys.readouterr().err

    def test_list_with_state(self, engine, mapping, capsys):
        save_mapping(engine, mapping)
        state = load_state(engine, mapping.name)
        state.status = "completed"
        state.last_sync_at = "2025-01-15T07:30:00.000Z"
        state.total_synced = 12
        save_state(engine, state)

        main(["list"])
        err = capsys.readouterr().err
        assert "OK  crm-contacts (attio) -> contact" in err
        assert "Total: 12 records" in err
        assert "1 mappings" in err

    def test_show(self, engine, mapping, capsys):
        save_mapping(engine, mapping)
        main(["show", mapping.name])
        err = capsys.readouterr().err
        assert "Connection:  live::attio::default::abc" in err
        assert "Last sync: never" in err
        assert "email <- values.email" in err

    def test_show_missing(self, capsys):
        assert _exit_code(["show", "nope"]) == 1

    def test_status_shows_error(self, engine, mapping, capsys):
        save_mapping(engine, mapping)
        state = load_state(engine, mapping.name)
        state.status = "error"
        state.last_error = "Pica API error 500: boom"
        save_state(engine, state)

        main(["status"])
        err = capsys.readouterr().err
        assert "Status:    error" in err
        assert "Error:     Pica API error 500: boom" in err


class TestRemove:
    def test_remove(self, engine, mapping, capsys):
        save_mapping(engine, mapping)
        main(["remove", mapping.name])
        assert load_mapping(engine, mapping.name) is None
        assert "Removed: crm-contacts" in capsys.readouterr().err

    def test_remove_missing(self):
        assert _exit_code(["remove", "nope"]) == 1


class TestPull:
    def test_success_exits_0(self, capsys):
        results = [SyncResult(name="crm-contacts", new=3, duration="0.4s")]
        with patch("pipesync.sync.runner.pull_mappings", new=AsyncMock(return_value=results)) as mock_pull:
            assert _exit_code(["pull", "crm-contacts", "--full", "-o", "db"]) == 0

        assert mock_pull.await_args.kwargs == {"names": ["crm-contacts"], "full": True}
        assert "crm-contacts: Done: 3 new, 0 updated, 0 errors (0.4s)" in capsys.readouterr().err

    def test_all_mappings_when_no_name(self):
        with patch("pipesync.sync.runner.pull_mappings", new=AsyncMock(return_value=[])) as mock_pull:
            assert _exit_code(["pull", "-o", "stdout"]) == 0
        assert mock_pull.await_args.kwargs["names"] is None

    def test_failed_run_exits_1(self, capsys):
        results = [SyncResult(name="m", new=2, errors=1, status="error", error="boom")]
        with patch("pipesync.sync.runner.pull_mappings", new=AsyncMock(return_value=results)):
            assert _exit_code(["pull", "-o", "stdout"]) == 1

        err = capsys.readouterr().err
        assert "m: Error: boom" in err
        assert "Partial: 2 new" in err

    def test_missing_secret_exits_1(self, capsys):
        from pipesync.pica.client import MissingSecretKeyError

        failing = AsyncMock(side_effect=MissingSecretKeyError("PICA_SECRET_KEY is not set"))
        with patch("pipesync.sync.runner.pull_mappings", new=failing):
            assert _exit_code(["pull", "-o", "stdout"]) == 1
        assert "PICA_SECRET_KEY" in capsys.readouterr().err

    def test_unknown_output_rejected_by_parser(self):
        assert _exit_code(["pull", "-o", "mem"]) == 2


def test_watch_rejects_bad_interval(capsys):
    assert _exit_code(["watch", "--interval", "soon", "-o", "stdout"]) == 1
    assert "Invalid interval" in capsys.readouterr().err


def test_serve_runs_uvicorn(engine):
    with patch("pipesync.api.main.get_engine", return_value=engine), \
         patch("uvicorn.run") as mock_run:
        main(["serve", "--port", "9000"])

    app = mock_run.call_args.args[0]
    assert [r.path for r in app.routes if r.path.startswith("/mappings")]
    assert mock_run.call_args.kwargs == {"host": "127.0.0.1", "port": 9000}
