from __future__ import annotations

import json

import pytest

from tufguard.config import load_config


def test_load_config_from_yaml(tmp_path) -> None:
    path = tmp_path / "tufguard.yaml"
    path.write_text(
        """
vendor_dir: build/vendor
cache:
  directory: build/cache
  read_only: true
repositories:
  - name: main
    url: https://repo.example.org/
    tuf:
      url: https://tuf.example.org/metadata
  - name: legacy
    url: http://legacy.example.org
    allow_ssl_downgrade: false
    options:
      headers:
        X-Token: abc
""",
        encoding="utf-8",
    )

    config = load_config(path)

    main = config.get_repository("main")
    legacy = config.get_repository("legacy")
    assert config.vendor_dir == "build/vendor"
    assert config.cache.read_only is True
    assert config.transport.backoff_seconds == pytest.approx(0.1)
    assert main.url == "https://repo.example.org"
    assert main.is_validated is True
    assert main.allow_ssl_downgrade is True
    assert legacy.is_validated is False
    assert legacy.allow_ssl_downgrade is False
    assert legacy.options == {"headers": {"X-Token": "abc"}}


def test_load_config_from_json(tmp_path) -> None:
    path = tmp_path / "tufguard.json"
    path.write_text(
        json.dumps({"repositories": [{"name": "main", "url": "https://repo.example.org"}]}),
        encoding="utf-8",
    )

    config = load_config(path)

    assert [repo.name for repo in config.repositories] == ["main"]
    with pytest.raises(KeyError):
        config.get_repository("other")


@pytest.mark.parametrize(
    "payload",
    [
        {"repositories": [{"name": "a", "url": "ftp://repo.example.org"}]},
        {"repositories": [{"name": "a", "url": "https://repo.example.org", "typo": 1}]},
        {
            "repositories": [
                {"name": "a", "url": "https://one.example.org"},
                {"name": "a", "url": "https://two.example.org"},
            ]
        },
        {"transport": {"backoff_seconds": -1}},
    ],
)
def test_invalid_config_is_rejected(tmp_path, payload: dict[str, object]) -> None:
    path = tmp_path / "tufguard.json"
    path.write_text(json.dumps(payload), encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid configuration"):
        load_config(path)


def test_config_root_must_be_object(tmp_path) -> None:
    path = tmp_path / "tufguard.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ValueError, match="root must be an object"):
        load_config(path)
