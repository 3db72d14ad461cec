import pytest

import config


@pytest.fixture(autouse=True)
def config_file(tmp_path, monkeypatch):
    """Каждый тест пишет конфиг во временный каталог и начинает с пустым кэшем file_logging."""
    path = tmp_path / "paster.json"
    monkeypatch.setattr(config, "CONFIG_FILE", str(path))
    monkeypatch.setattr(config, "_file_logging_cached", None)
    return path
