"""Tests for account helpers and StashConfig."""

from pathlib import Path

import pytest

from pwstash.accounts import default_target_user, ensure_user, require_root, user_exists, valid_username
from pwstash.config import StashConfig
from pwstash.errors import NotRoot, UserNotFound


class TestAccounts:

    def test_user_exists(self):
        assert user_exists("alice")
        assert not user_exists("mallory")

    @pytest.mark.parametrize("name", ["", ".", "..", "a/b", "a:b", "a\nb"])
    def test_invalid_names(self, name):
        assert not valid_username(name)
        assert not user_exists(name)

    def test_ensure_user(self):
        ensure_user("carol")
        with pytest.raises(UserNotFound, match="mallory"):
            ensure_user("mallory")

    def test_default_prefers_sudo_invoker(self):
        assert default_target_user("bob", current="root") == "bob"

    def test_default_ignores_root_invoker(self):
        assert default_target_user("root", current="alice") == "alice"
        assert default_target_user(None, current="alice") == "alice"
        assert default_target_user("", current="alice") == "alice"

    def test_require_root(self, monkeypatch):
        monkeypatch.setattr("pwstash.accounts.os.geteuid", lambda: 1000)
        with pytest.raises(NotRoot):
            require_root(StashConfig())
        require_root(StashConfig(require_root=False))

        monkeypatch.setattr("pwstash.accounts.os.geteuid", lambda: 0)
        require_root(StashConfig())


class TestConfig:

    def test_defaults(self):
        config = StashConfig()
        assert config.base_dir == Path("/root/pwstash")
        assert config.hash_dir == Path("/root/pwstash/user_hashes")
        assert config.shadow_path == Path("/etc/shadow")
        assert config.shadow_mode == 0o640
        assert config.passwd_mode == 0o644
        assert config.rotate_command == "changeseedboxpass"
        assert config.elevate_command == "sudo"

    def test_from_env(self):
        config = StashConfig.from_env({
            "PWSTASH_BASE_DIR": "/srv/stash",
            "PWSTASH_SHADOW": "/tmp/shadow",
            "PWSTASH_ROTATE_COMMAND": "rotatepw",
            "PWSTASH_ELEVATE_COMMAND": "",
        })
        assert config.hash_dir == Path("/srv/stash/user_hashes")
        assert config.shadow_path == Path("/tmp/shadow")
        assert config.rotate_command == "rotatepw"
        assert config.elevate_command is None

    def test_from_env_overrides_win(self):
        config = StashConfig.from_env({"PWSTASH_BASE_DIR": "/srv/stash"}, base_dir="/opt/stash")
        assert config.base_dir == Path("/opt/stash")

    def test_with_overrides_moves_hash_dir(self):
        config = StashConfig().with_overrides(base_dir="/srv/other")
        assert config.hash_dir == Path("/srv/other/user_hashes")
