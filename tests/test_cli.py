"""Startup: config errors and unreachable storage are fatal; a missing bucket only warns."""
import logging
import sys

import pytest

from prosody_filer import cli
from prosody_filer.services.storage import StorageError


class _Bucket:
    def __init__(self, exists=True, error=None):
        self._exists = exists
        self._error = error

    def bucket_exists(self, bucket):
        if self._error:
            raise self._error
        return self._exists


def test_check_bucket_found(caplog):
    with caplog.at_level(logging.INFO, logger="prosody_filer"):
        cli.check_bucket(_Bucket(exists=True), "uploads")
    assert "S3 bucket found." in caplog.text


def test_check_bucket_missing_only_warns(caplog):
    with caplog.at_level(logging.WARNING, logger="prosody_filer"):
        cli.check_bucket(_Bucket(exists=False), "uploads")
    assert "Bucket does not exist" in caplog.text


def test_check_bucket_query_failure_propagates():
    with pytest.raises(StorageError):
        cli.check_bucket(_Bucket(error=StorageError("denied")), "uploads")


def test_main_missing_config_exits_1(tmp_path, monkeypatch):
    monkeypatch.setattr(sys, "argv", ["prosody-filer-s3", "--config", str(tmp_path / "missing.toml")])
    assert cli.main() == 1


def test_main_storage_unavailable_exits_1(tmp_path, monkeypatch):
    config = tmp_path / "config.toml"
    config.write_text('secret = "x"\ns3_endpoint = "s3.test"\ns3_bucket = "uploads"\n')
    monkeypatch.setattr(sys, "argv", ["prosody-filer-s3", "--config", str(config)])
    monkeypatch.setattr(cli, "get_storage", lambda settings: _Bucket(error=StorageError("unreachable")))
    served = []
    monkeypatch.setattr(cli.uvicorn, "run", lambda *a, **kw: served.append(a))
    assert cli.main() == 1
    assert served == []


def test_main_serves_on_configured_address(tmp_path, monkeypatch):
    config = tmp_path / "config.toml"
    config.write_text(
        'secret = "x"\ns3_endpoint = "s3.test"\ns3_bucket = "uploads"\nlisten_address = "127.0.0.1:5050"\n'
    )
    monkeypatch.setattr(sys, "argv", ["prosody-filer-s3", "--config", str(config)])
    monkeypatch.setattr(cli, "get_storage", lambda settings: _Bucket(exists=False))
    served = {}
    monkeypatch.setattr(cli.uvicorn, "run", lambda app, host, port, **kw: served.update(host=host, port=port))
    assert cli.main() == 0
    assert served == {"host": "127.0.0.1", "port": 5050}
