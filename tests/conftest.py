import os
import tempfile

import pytest

# Keep log output out of the working tree; must run before log_utils is imported.
os.environ.setdefault(
    "POOL_ENGINE_LOG_FILE", os.path.join(tempfile.gettempdir(), "pool_engine_tests.log")
)


@pytest.fixture(autouse=True)
def _metrics_to_tmp(tmp_path):
    import observability

    observability.set_metrics_path(tmp_path / "metrics.csv")
    yield
