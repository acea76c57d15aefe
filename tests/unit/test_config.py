"""
Unit tests for settings selection and the token endpoint config.
"""

import pytest

from perfkit import config as settings
from perfkit.config import TokenConfig, get_config, load_token_config
from perfkit.errors import ConfigError


pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    "env,expected",
    [
        ("development", settings.DevelopmentConfig),
        ("testing", settings.TestingConfig),
        ("production", settings.ProductionConfig),
        ("default", settings.Config),
        ("staging", settings.Config),
    ],
)
def test_get_config_by_name(env, expected):
    assert get_config(env) is expected


def test_get_config_reads_environment(monkeypatch):
    monkeypatch.setenv("PERFKIT_ENV", "production")

    assert get_config() is settings.ProductionConfig


def test_testing_config_does_not_sleep():
    assert settings.TestingConfig.TOKEN_REFRESH_WAIT_SECONDS == 0.0
    assert settings.TestingConfig.TOKEN_REFRESH_RATIO == settings.Config.TOKEN_REFRESH_RATIO


def test_token_config_defaults():
    config = TokenConfig(url="http://auth.test", username="u", password="p")

    assert config.method == "POST"
    assert config.token_path == "access_token"
    assert config.lifetime_seconds == 600
    assert config.timeout == settings.TestingConfig.TOKEN_REQUEST_TIMEOUT
    assert config.headers == {}


@pytest.mark.parametrize("lifetime", [0, -5])
def test_token_config_rejects_non_positive_lifetime(lifetime):
    with pytest.raises(ConfigError, match="lifetime"):
        TokenConfig(url="http://auth.test", username="u", password="p", lifetime_seconds=lifetime)


def test_from_mapping_missing_field():
    with pytest.raises(ConfigError, match="Invalid token config"):
        TokenConfig.from_mapping({"url": "http://auth.test", "username": "u"})


def test_to_dict_round_trips_through_from_mapping():
    config = TokenConfig(
        url="http://auth.test", username="u", password="p", headers={"X-Tenant": "t1"}
    )

    assert TokenConfig.from_mapping(config.to_dict()) == config


def test_load_token_config_from_yaml(tmp_path):
    path = tmp_path / "token.yaml"
    path.write_text(
        "token:\n"
        "  url: http://auth.test/login\n"
        "  username: admin\n"
        "  password: secret\n"
        "  lifetime_seconds: 300\n"
        "  token_path: data.token\n",
        encoding="utf-8",
    )

    config = load_token_config(path)

    assert config.url == "http://auth.test/login"
    assert config.lifetime_seconds == 300
    assert config.token_path == "data.token"


def test_load_token_config_top_level(tmp_path):
    path = tmp_path / "token.yml"
    path.write_text("url: http://a\nusername: u\npassword: p\n", encoding="utf-8")

    assert load_token_config(path).url == "http://a"


@pytest.mark.parametrize(
    "content",
    ["url: [unclosed\n", "- just\n- a list\n", "url: http://a\nusername: u\n"],
    ids=["bad-yaml", "not-a-mapping", "missing-password"],
)
def test_load_token_config_rejects_bad_files(tmp_path, content):
    path = tmp_path / "token.yaml"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError):
        load_token_config(path)


def test_load_token_config_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="Cannot read"):
        load_token_config(tmp_path / "absent.yaml")
