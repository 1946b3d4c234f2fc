"""
Shared pytest fixtures for the pwstash test suite.

Every test gets a private credential/identity file pair under ``tmp_path``
and a stubbed account directory, so nothing touches the real /etc files.
"""

import pwd

import pytest

from pwstash.config import StashConfig

SHADOW_LINES = [
    b"root:*:19000:0:99999:7:::\n",
    b"alice:$6$abc$Qx1hash:19500:0:99999:7:::\n",
    b"bob:$6$bob$Zz9hash:19501:0:99999:7:::\n",
    b"daemon:*:19000:0:99999:7:::\n",
]

PASSWD_LINES = [
    b"root:x:0:0:root:/root:/bin/bash\n",
    b"alice:x:1000:1000::/home/alice:/bin/bash\n",
    b"bob:x:1001:1001::/home/bob:/bin/bash\n",
    b"carol:x:1002:1002::/home/carol:/bin/bash\n",
    b"daemon:x:1:1::/usr/sbin:/usr/sbin/nologin\n",
]

# carol has an account but no shadow line
ACCOUNTS = {"root": 0, "alice": 1000, "bob": 1001, "carol": 1002, "daemon": 1}


def _fake_entry(name):
    uid = ACCOUNTS[name]
    return pwd.struct_passwd((name, "x", uid, uid, "", f"/home/{name}", "/bin/bash"))


@pytest.fixture(autouse=True)
def fake_accounts(monkeypatch):
    """Answer account lookups from ACCOUNTS instead of the host."""

    def getpwnam(name):
        if name not in ACCOUNTS:
            raise KeyError(f"getpwnam(): name not found: '{name}'")
        return _fake_entry(name)

    monkeypatch.setattr(pwd, "getpwnam", getpwnam)
    return ACCOUNTS


@pytest.fixture
def etc_dir(tmp_path):
    etc = tmp_path / "etc"
    etc.mkdir()
    (etc / "shadow").write_bytes(b"".join(SHADOW_LINES))
    (etc / "passwd").write_bytes(b"".join(PASSWD_LINES))
    (etc / "shadow").chmod(0o640)
    (etc / "passwd").chmod(0o644)
    return etc


@pytest.fixture
def config(tmp_path, etc_dir):
    """StashConfig pointed at the temp files, without chown or root checks."""
    return StashConfig(
        base_dir=tmp_path / "pwstash",
        shadow_path=etc_dir / "shadow",
        passwd_path=etc_dir / "passwd",
        shadow_owner=None,
        shadow_group=None,
        passwd_owner=None,
        passwd_group=None,
        elevate_command=None,
        require_root=False,
    )


@pytest.fixture
def stash(config):
    from pwstash.store import ShadowStash

    return ShadowStash(config)


class CallLog(list):
    """argv of each launch; keyword options in ``options``."""

    def __init__(self):
        super().__init__()
        self.options = []


@pytest.fixture
def rotation_calls(monkeypatch):
    """Pretend the rotation command exists and record each launch."""
    import subprocess

    calls = CallLog()

    def fake_which(name):
        return f"/usr/bin/{name}" if name in ("changeseedboxpass", "sudo") else None

    def fake_run(argv, **kwargs):
        calls.append(list(argv))
        calls.options.append(kwargs)
        return subprocess.CompletedProcess(argv, 0)

    monkeypatch.setattr("pwstash.store.shutil.which", fake_which)
    monkeypatch.setattr("pwstash.store.subprocess.run", fake_run)
    return calls
