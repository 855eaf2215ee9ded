"""
Unit tests for configuration loading and validation.
"""

import json
import os

import pytest

from staticserver.config import ServerConfig, ConfigError


class TestDefaults:

    def test_defaults(self):
        config = ServerConfig()

        assert config.host == "127.0.0.1"
        assert config.port == 0
        assert config.root == "."
        assert config.index_page == "index.html"
        assert config.max_age == 3600
        assert config.zip_match == r"^\.(css|js|html)$"
        assert config.proxy_match == r"^/api/"
        assert config.proxy_target == "http://127.0.0.1"
        assert config.open_browser is False

    def test_frozen(self):
        config = ServerConfig()
        with pytest.raises(Exception):
            config.port = 80


class TestOverrides:

    def test_strings_are_coerced(self):
        config = ServerConfig().with_overrides(
            port="9527", max_age="0", timeout="2.5", open_browser="yes",
        )

        assert config.port == 9527
        assert config.max_age == 0
        assert config.timeout == 2.5
        assert config.open_browser is True

    def test_none_is_skipped(self):
        config = ServerConfig(port=8000).with_overrides(port=None, root=None)
        assert config.port == 8000
        assert config.root == "."

    def test_empty_proxy_match_is_kept(self):
        assert ServerConfig().with_overrides(proxy_match="").proxy_match == ""

    def test_unknown_option(self):
        with pytest.raises(ConfigError, match="Unknown config option"):
            ServerConfig().with_overrides(colour="blue")

    def test_bad_number(self):
        with pytest.raises(ConfigError):
            ServerConfig().with_overrides(port="eighty")

    def test_bad_boolean(self):
        with pytest.raises(ConfigError):
            ServerConfig().with_overrides(open_browser="maybe")


class TestFromEnv:

    def test_reads_static_variables(self):
        environ = {
            "STATIC_PORT": "9527",
            "STATIC_ROOT": "/srv/www",
            "STATIC_PROXY_TARGET": "http://localhost:3000",
            "STATIC_OPEN_BROWSER": "1",
            "UNRELATED": "x",
        }

        config = ServerConfig.from_env(environ)

        assert config.port == 9527
        assert config.root == "/srv/www"
        assert config.proxy_target == "http://localhost:3000"
        assert config.open_browser is True

    def test_layers_over_base(self):
        base = ServerConfig(port=8000, max_age=10)
        config = ServerConfig.from_env({"STATIC_MAX_AGE": "20"}, base=base)

        assert config.port == 8000
        assert config.max_age == 20

    def test_os_environ_by_default(self, clean_env, monkeypatch):
        monkeypatch.setenv("STATIC_INDEX_PAGE", "home.html")
        assert ServerConfig.from_env().index_page == "home.html"


class TestFromFile:

    def test_json_file(self, tmp_path):
        path = tmp_path / "static.json"
        path.write_text(json.dumps({"port": 9527, "proxy_match": "", "max_age": 5}))

        config = ServerConfig.from_file(str(path))

        assert config.port == 9527
        assert config.proxy_match == ""
        assert config.max_age == 5

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="Cannot read"):
            ServerConfig.from_file(str(tmp_path / "nope.json"))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{port: 1")
        with pytest.raises(ConfigError, match="Invalid JSON"):
            ServerConfig.from_file(str(path))

    def test_not_an_object(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[1, 2]")
        with pytest.raises(ConfigError, match="JSON object"):
            ServerConfig.from_file(str(path))


class TestValidate:

    def test_valid_config_gets_absolute_root(self, site):
        config = ServerConfig(root=str(site)).validate()
        assert os.path.isabs(config.root)

    @pytest.mark.parametrize("overrides, message", [
        ({"port": 70000}, "Invalid port"),
        ({"port": -1}, "Invalid port"),
        ({"index_page": "a/b.html"}, "index_page"),
        ({"max_age": -5}, "max_age"),
        ({"zip_match": "("}, "zip_match"),
        ({"proxy_match": "[a-"}, "proxy_match"),
        ({"proxy_target": "ftp://host"}, "proxy_target"),
        ({"min_workers": 0}, "min_workers"),
        ({"min_workers": 4, "max_workers": 2}, "max_workers"),
        ({"buffer_size": 10}, "buffer_size"),
        ({"log_format": "xml"}, "log_format"),
    ])
    def test_invalid(self, site, overrides, message):
        config = ServerConfig(root=str(site), **overrides)
        with pytest.raises(ConfigError, match=message):
            config.validate()

    def test_missing_root(self, tmp_path):
        with pytest.raises(ConfigError, match="Root directory"):
            ServerConfig(root=str(tmp_path / "missing")).validate()

    def test_proxy_target_unchecked_when_proxy_disabled(self, site):
        ServerConfig(root=str(site), proxy_match="", proxy_target="nonsense").validate()

    def test_config_error_is_value_error(self):
        assert issubclass(ConfigError, ValueError)
