import httpx
import pytest

from hass_companion.__main__ import initial_settings, parse_args, run
from hass_companion.models import PersistedEntity, Settings
from hass_companion.store import load_settings, save_settings


class TestCommandLine:
    """Test building the device settings from the command line."""

    def test_saved_settings_are_used(self, tmp_path):
        path = tmp_path / "settings.json"
        save_settings(Settings(url="http://ha", token="saved", entities=[PersistedEntity(name="light.a")]), path)

        settings = initial_settings(parse_args(["--settings", str(path)]))

        assert settings.url == "http://ha"
        assert settings.token == "saved"
        assert settings.entities == [PersistedEntity(name="light.a")]

    def test_arguments_override_saved_settings(self, tmp_path):
        path = tmp_path / "settings.json"
        save_settings(Settings(url="http://ha", token="saved", entities=[PersistedEntity(name="light.a")]), path)

        settings = initial_settings(parse_args([
            "--settings", str(path), "--token", "new", "--port", "443", "--no-force", "switch.b", "cover.c",
        ]))

        assert settings.url == "http://ha"
        assert settings.token == "new"
        assert settings.port == "443"
        assert settings.force is False
        assert [entity.name for entity in settings.entities] == ["switch.b", "cover.c"]

    def test_force_is_left_alone_without_flag(self, tmp_path):
        path = tmp_path / "settings.json"
        save_settings(Settings(force=False), path)

        settings = initial_settings(parse_args(["--settings", str(path)]))

        assert settings.force is False

    def test_toggle_may_repeat(self):
        args = parse_args(["--toggle", "light.a", "--toggle", "switch.b"])
        assert args.toggle == ["light.a", "switch.b"]


STATES = {
    "switch.pump": {"entity_id": "switch.pump", "state": "off", "attributes": {"friendly_name": "Pump"}},
    "light.porch": {"entity_id": "light.porch", "state": "on", "attributes": {"friendly_name": "Porch"}},
}


@pytest.fixture
def settings_path(tmp_path):
    path = tmp_path / "settings.json"
    save_settings(Settings(
        url="http://localhost",
        port="8123",
        token="mock_token",
        entities=[PersistedEntity(name=entity_id) for entity_id in STATES],
    ), path)
    return path


@pytest.fixture
def online_client(mock_httpx_client, make_response):
    async def fake_get(url, headers=None):
        if url.endswith("/api/config"):
            return make_response(200, "GET", url, json={"location_name": "Home"})
        return make_response(200, "GET", url, json=STATES[url.rsplit("/", 1)[1]])

    mock_httpx_client.get.side_effect = fake_get
    return mock_httpx_client


class TestRun:
    """Test a full command line sync against a mocked server."""

    @pytest.mark.asyncio
    async def test_online_sync_prints_and_saves(self, online_client, settings_path, capsys):
        exit_code = await run(["--settings", str(settings_path)], client=online_client)

        assert exit_code == 0
        output = capsys.readouterr().out
        assert "Home" in output
        assert "Pump: off" in output
        assert "Porch: on" in output
        saved = load_settings(settings_path)
        assert sorted(entity.name for entity in saved.entities) == sorted(STATES)
        online_client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_toggle_flips_entity(self, online_client, settings_path, capsys):
        exit_code = await run(["--settings", str(settings_path), "--toggle", "switch.pump"], client=online_client)

        assert exit_code == 0
        online_client.post.assert_called_once()
        assert online_client.post.call_args[0][0] == "http://localhost:8123/api/services/switch/turn_on"
        assert online_client.post.call_args[1]["json"] == {"entity_id": "switch.pump"}
        assert "Pump: on" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_toggle_unknown_entity_sends_nothing(self, online_client, settings_path):
        await run(["--settings", str(settings_path), "--toggle", "cover.garage"], client=online_client)

        online_client.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_offline_run_keeps_saved_entities(self, mock_httpx_client, settings_path, capsys):
        mock_httpx_client.get.side_effect = httpx.ConnectError("connection refused")

        exit_code = await run(["--settings", str(settings_path)], client=mock_httpx_client)

        assert exit_code == 1
        assert "Connection error" in capsys.readouterr().out
        saved = load_settings(settings_path)
        assert [entity.name for entity in saved.entities] == list(STATES)
        # Only the health check is attempted
        assert mock_httpx_client.get.call_count == 1

    @pytest.mark.asyncio
    async def test_server_error_keeps_saved_entities(self, mock_httpx_client, make_response, settings_path):
        mock_httpx_client.get.return_value = make_response(500, "GET", "http://localhost:8123/api/config")

        exit_code = await run(["--settings", str(settings_path)], client=mock_httpx_client)

        assert exit_code == 1
        assert [entity.name for entity in load_settings(settings_path).entities] == list(STATES)
