"""Shared pytest fixtures for nodepack tests."""

import json

import pytest

PROJECT_MANIFEST = {
    "name": "test-service",
    "version": "1.0.0",
    "dependencies": {
        "@scoped/vendor": "1.0.0",
        "bluebird": "^3.4.0",
        "uuid": "^5.4.1",
        "pg": "^4.3.5",
    },
    "devDependencies": {
        "eslint": "^8.0.0",
        "aws-sdk": "^2.1000.0",
        "mockery": "^2.1.0",
    },
    "resolutions": {"minimist": "1.2.8"},
}


@pytest.fixture
def project_manifest():
    return json.loads(json.dumps(PROJECT_MANIFEST))


@pytest.fixture
def project_dir(tmp_path, project_manifest):
    """A service directory with a package.json and nothing installed."""
    root = tmp_path / "service"
    root.mkdir()
    (root / "package.json").write_text(json.dumps(project_manifest, indent=2))
    return root


@pytest.fixture
def dependency_tree():
    """Nested ``npm ls`` shaped tree: request-promise pulls in request."""
    return {
        "bluebird": {"version": "3.7.2", "dependencies": {}},
        "request-promise": {
            "version": "4.2.6",
            "dependencies": {
                "request": {"version": "2.88.2", "dependencies": {}},
                "bluebird": {"version": "3.5.0", "dependencies": {}},
            },
        },
        "Y": {
            "version": "1.0.0",
            "dependencies": {"X": {"version": "2.2.6", "dependencies": {}}},
        },
    }
