from typing import Iterator, List, Tuple

import pytest
from fastapi.testclient import TestClient

from main import create_app


class RecordingActuator:
    """Actuator double that records every command it receives."""

    def __init__(self, fail: bool = False) -> None:
        self.commands: List[Tuple[str, object]] = []
        self.fail = fail

    def send_command(self, action, value) -> None:
        self.commands.append((action, value))
        if self.fail:
            raise ConnectionError("actuator offline")


@pytest.fixture
def temp_db(tmp_path, monkeypatch):
    """Point the reading store at a fresh database file."""
    db_file = tmp_path / "test_hydroponics.db"
    monkeypatch.setattr("hydro.state.DB_FILE", str(db_file))
    monkeypatch.setattr("hydro.config.DB_FILE", str(db_file))
    yield str(db_file)


@pytest.fixture
def actuator() -> RecordingActuator:
    return RecordingActuator()


@pytest.fixture
def client(temp_db, actuator) -> Iterator[TestClient]:
    app = create_app(backend=actuator)
    with TestClient(app) as c:
        yield c
