import textwrap
import time
from pathlib import Path

import pytest

SAMPLE_TREE = {
    "shared/default.yaml": """
        log_level: info
        timeout: 30
        db:
          x: 1
    """,
    "shared/prod.yaml": """
        log_level: warn
    """,
    "shared/staging.yaml": """
        feature_flags: [search, export]
    """,
    "projects/billing/project.yaml": """
        description: Billing service
        api_keys:
          - key: billing-key-1
          - key: billing-key-2
    """,
    "projects/billing/default.yaml": """
        db:
          y: 2
        db_host: localhost
        db_port: 5432
    """,
    "projects/web/project.yaml": """
        api_keys:
          - key: web-key
    """,
    "projects/web/prod.yaml": """
        redis.url: redis://cache:6379
        api-timeout: 5
        retry:
          max_retries: 3
    """,
}


def write_file(root: Path, relative: str, content: str) -> Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(content).lstrip("\n"), encoding="utf-8")
    return path


@pytest.fixture
def config_tree(tmp_path):
    """A populated configuration root with two projects."""
    root = tmp_path / "config"
    for relative, content in SAMPLE_TREE.items():
        write_file(root, relative, content)
    return root


@pytest.fixture
def write(config_tree):
    """Write (or overwrite) a file under the sample configuration root."""
    def _write(relative: str, content: str) -> Path:
        return write_file(config_tree, relative, content)
    return _write


def wait_for(predicate, timeout=10.0):
    """Poll ``predicate`` until it is true or ``timeout`` seconds pass."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()
