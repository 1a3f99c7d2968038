"""Tests for configuration loading and validation."""

import pytest

from difflens_core.config import (
    ConfigurationError,
    RunConfiguration,
    build_run_config,
    load_config,
    load_rules,
    resolve_client_type,
    resolve_ignore_file,
)


def test_defaults_applied_when_no_config_file(tmp_path):
    config = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    assert config["url"] == "http://localhost:1234"
    assert config["model"] == "gpt-oss-20b"
    assert config["temperature"] == 0.7
    assert config["max_size"] == 1048576
    assert config["output"] == "index.html"
    assert config["include_diff"] is True
    assert config["client"] == "lmstudio"
    assert config["exclude"] == []


def test_config_file_overrides_defaults(tmp_path):
    cfg = tmp_path / ".difflens.yml"
    cfg.write_text("model: qwen2.5-coder\nmax-size: 2048\nexclude:\n  - '*.lock'\n")
    config = load_config(config_path=str(cfg))
    assert config["model"] == "qwen2.5-coder"
    assert config["max_size"] == 2048
    assert config["exclude"] == ["*.lock"]


def test_cli_overrides_config_file(tmp_path):
    cfg = tmp_path / ".difflens.yml"
    cfg.write_text("model: from-file\ntemperature: 0.3\n")
    config = load_config(config_path=str(cfg), cli_overrides={"model": "from-cli", "temperature": None})
    assert config["model"] == "from-cli"
    assert config["temperature"] == 0.3


def test_non_mapping_config_rejected(tmp_path):
    cfg = tmp_path / ".difflens.yml"
    cfg.write_text("- just\n- a list\n")
    with pytest.raises(ConfigurationError):
        load_config(config_path=str(cfg))


def test_api_key_read_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    config = load_config(config_path=str(tmp_path / "none.yml"))
    assert config["openai_api_key"] == "sk-env"


def test_defaults_not_shared_between_loads(tmp_path):
    first = load_config(config_path=str(tmp_path / "none.yml"))
    first["exclude"].append("mutated/")
    assert load_config(config_path=str(tmp_path / "none.yml"))["exclude"] == []


class TestBuildRunConfig:
    def _config(self, tmp_path, **overrides):
        return load_config(str(tmp_path / "none.yml"), cli_overrides={"directory": str(tmp_path), **overrides})

    def test_valid(self, tmp_path):
        run = build_run_config(self._config(tmp_path, start_commit="abc", severities=["Error", "Critical"]))
        assert isinstance(run, RunConfiguration)
        assert run.directory == str(tmp_path)
        assert run.start_commit == "abc"
        assert run.end_commit is None
        assert run.severities == ("Error", "Critical")
        assert run.client == "lmstudio"

    def test_missing_directory(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Directory path is required"):
            build_run_config(load_config(str(tmp_path / "none.yml")))

    def test_nonexistent_directory(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Directory not found"):
            build_run_config(self._config(tmp_path, directory=str(tmp_path / "missing")))

    @pytest.mark.parametrize("url", ["localhost:1234", "ftp://host", "not a url", ""])
    def test_invalid_url(self, tmp_path, url):
        with pytest.raises(ConfigurationError, match="Invalid base URL"):
            build_run_config(self._config(tmp_path, url=url))

    @pytest.mark.parametrize("temperature", [-0.1, 1.5, "hot"])
    def test_invalid_temperature(self, tmp_path, temperature):
        with pytest.raises(ConfigurationError, match="Temperature"):
            build_run_config(self._config(tmp_path, temperature=temperature))

    def test_invalid_max_size(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Max file size"):
            build_run_config(self._config(tmp_path, max_size=0))

    def test_unknown_severity(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Unknown severities"):
            build_run_config(self._config(tmp_path, severities=["Blocker"]))

    def test_api_key_hidden_from_repr(self, tmp_path):
        run = build_run_config({**self._config(tmp_path), "openai_api_key": "sk-secret"})
        assert "sk-secret" not in repr(run)


class TestResolveClientType:
    @pytest.mark.parametrize("value", ["lmstudio", "LMStudio", "LMStudioClient"])
    def test_lmstudio_aliases(self, value):
        assert resolve_client_type(value) == "lmstudio"

    @pytest.mark.parametrize("value", ["openai", "OpenAI", "OpenAICompatibleClient"])
    def test_openai_aliases(self, value):
        assert resolve_client_type(value) == "openai"

    def test_unknown_falls_back_with_warning(self, caplog):
        with caplog.at_level("WARNING", logger="difflens_core.config"):
            assert resolve_client_type("ollama") == "lmstudio"
        assert "Unknown client type" in caplog.text


class TestLoadRules:
    def test_builtin_rules(self):
        assert "DEFAULT CODE REVIEW RULES" in load_rules()

    def test_custom_rules(self, tmp_path):
        rules = tmp_path / "rules.txt"
        rules.write_text("Never use eval.")
        assert load_rules(str(rules)) == "Never use eval."

    def test_unreadable_custom_rules_fall_back(self, tmp_path, caplog):
        with caplog.at_level("WARNING", logger="difflens_core.config"):
            text = load_rules(str(tmp_path / "missing.txt"))
        assert "DEFAULT CODE REVIEW RULES" in text
        assert "Could not read custom review rules" in caplog.text


class TestResolveIgnoreFile:
    def test_explicit_relative_path(self, tmp_path):
        assert resolve_ignore_file("conf/ignore", str(tmp_path / "repo"), cwd=tmp_path) == tmp_path / "conf/ignore"

    def test_working_directory_first(self, tmp_path):
        repo = tmp_path / "repo"
        repo.mkdir()
        (tmp_path / ".reviewignore").write_text("a/")
        (repo / ".reviewignore").write_text("b/")
        assert resolve_ignore_file(None, str(repo), cwd=tmp_path) == tmp_path / ".reviewignore"

    def test_repository_root_second(self, tmp_path):
        repo = tmp_path / "repo"
        repo.mkdir()
        (repo / ".reviewignore").write_text("b/")
        assert resolve_ignore_file(None, str(repo), cwd=tmp_path) == repo / ".reviewignore"

    def test_none_when_absent(self, tmp_path):
        assert resolve_ignore_file(None, str(tmp_path), cwd=tmp_path) is None
