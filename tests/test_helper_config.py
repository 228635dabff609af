"""Unit tests for HelperConfig."""

import pytest


class TestHelperConfig:
    def test_string_default_and_missing(self, helper_config, monkeypatch):
        monkeypatch.delenv("SOME_UNSET_KEY", raising=False)
        assert helper_config.get_string_val("SOME_UNSET_KEY", default="x") == "x"
        with pytest.raises(ValueError):
            helper_config.get_string_val("SOME_UNSET_KEY")

    def test_int_val_enforces_minimum(self, helper_config, monkeypatch):
        monkeypatch.setenv("CHUNK_SIZE", "0")
        with pytest.raises(ValueError):
            helper_config.get_int_val("CHUNK_SIZE", default=1000, minimum=1)

    def test_int_val_rejects_fractions(self, helper_config, monkeypatch):
        monkeypatch.setenv("CHAT_TOP_K_GENERAL", "2.5")
        with pytest.raises(ValueError):
            helper_config.get_int_val("CHAT_TOP_K_GENERAL", default=5)

    def test_list_val_requires_brackets(self, helper_config, monkeypatch):
        monkeypatch.setenv("SOME_LIST", "[a, b]")
        assert helper_config.get_list_val("SOME_LIST") == ["a", "b"]
        monkeypatch.setenv("SOME_LIST", "a,b")
        with pytest.raises(ValueError):
            helper_config.get_list_val("SOME_LIST")

    def test_database_url_defaults_below_root_dir(self, helper_config, monkeypatch, tmp_path):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.setenv("ROOT_DIR", str(tmp_path))
        assert helper_config.get_database_url() == f"sqlite+aiosqlite:///{tmp_path}/data/doc_chat.db"
