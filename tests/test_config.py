"""Config loading from INI files and PROXMOX_* environment variables."""

import pytest

from proxmox_tasks.config import Config, ConfigError

KEYS = [
    "HOST", "PORT", "USER", "TOKEN_NAME", "TOKEN_VALUE", "VERIFY_SSL", "CA_CERT_PATH",
    "CONNECT_TIMEOUT", "READ_TIMEOUT", "POLL_INTERVAL", "TASK_TIMEOUT", "MAX_TRANSIENT_ERRORS",
    "DEBUG",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in KEYS:
        monkeypatch.delenv(f"PROXMOX_{key}", raising=False)


@pytest.fixture
def ini(tmp_path):
    path = tmp_path / "config.ini"
    path.write_text(
        "[proxmox]\n"
        "host = pve.lab\n"
        "token_name = ci\n"
        "token_value = from-file\n"
        "poll_interval = 2.5\n"
        "task_timeout = 600\n"
    )
    return path


def test_reads_file(ini):
    config = Config.from_env(config_path=ini)
    assert config.host == "pve.lab"
    assert config.token_value == "from-file"
    assert config.poll_interval == 2.5
    assert config.task_timeout == 600.0
    assert config.max_transient_errors == 3
    assert config.verify_ssl
    assert config.ca_cert_path is None


def test_environment_wins(ini, monkeypatch):
    monkeypatch.setenv("PROXMOX_TOKEN_VALUE", "from-env")
    monkeypatch.setenv("PROXMOX_VERIFY_SSL", "no")
    monkeypatch.setenv("PROXMOX_MAX_TRANSIENT_ERRORS", "7")
    config = Config.from_env(config_path=ini)
    assert config.token_value == "from-env"
    assert not config.verify_ssl
    assert config.max_transient_errors == 7


def test_profile_section(tmp_path):
    path = tmp_path / "config.lab.ini"
    path.write_text("[lab]\nhost = lab.pve\ntoken_name = t\ntoken_value = v\n")
    config = Config.from_env(profile="lab", config_path=path)
    assert config.host == "lab.pve"
    assert config.profile == "lab"


def test_missing_credentials(tmp_path):
    with pytest.raises(ConfigError):
        Config.from_env(config_path=tmp_path / "missing.ini")


def test_bad_number(ini, monkeypatch):
    monkeypatch.setenv("PROXMOX_POLL_INTERVAL", "fast")
    with pytest.raises(ConfigError):
        Config.from_env(config_path=ini)


def test_config_path_per_profile():
    assert Config.get_config_path().name == "config.ini"
    assert Config.get_config_path("lab").name == "config.lab.ini"
    assert Config.get_config_path().parent.name == "proxmox-tasks"


@pytest.mark.parametrize(
    "overrides, valid",
    [
        ({}, True),
        ({"poll_interval": 0}, False),
        ({"task_timeout": -1}, False),
        ({"max_transient_errors": -1}, False),
        ({"token_value": ""}, False),
    ],
)
def test_validate(overrides, valid):
    values = dict(host="pve", token_name="t", token_value="v")
    values.update(overrides)
    assert Config(**values).validate() is valid
