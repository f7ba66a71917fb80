import shutil
import tempfile
from pathlib import Path

import pytest

from editrelay.adapters import open_buffer


@pytest.fixture
def buffer(tmp_path):
    buf = open_buffer(tmp_path / "test.db")
    yield buf
    buf.close()


@pytest.fixture
def socket_dir():
    # Unix socket paths are length-limited; pytest's tmp_path can be too long.
    path = Path(tempfile.mkdtemp(prefix="er-"))
    yield path
    shutil.rmtree(path, ignore_errors=True)
