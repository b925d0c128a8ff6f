"""Shared test fixtures for l2agent."""

import json
from unittest.mock import MagicMock

import pytest
import requests

from l2agent.memory import ProjectMemoryManager


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_dir(tmp_path):
    path = tmp_path / "memory"
    path.mkdir()
    return path


@pytest.fixture
def memory(memory_dir, clock):
    return ProjectMemoryManager(memory_dir, clock=clock)


@pytest.fixture
def sample_project(tmp_path):
    """A small TypeScript/React project tree."""
    root = tmp_path / "proj"
    (root / "src" / "components").mkdir(parents=True)
    (root / "node_modules" / "react").mkdir(parents=True)
    (root / ".hidden").mkdir()

    (root / "package.json").write_text(
        json.dumps({"dependencies": {"react": "^18.0.0"}, "devDependencies": {"typescript": "^5.0.0"}}),
        encoding="utf-8",
    )
    (root / "src" / "index.ts").write_text("import App from './App';\nApp();\n", encoding="utf-8")
    (root / "src" / "App.tsx").write_text("export default function App() {}\n", encoding="utf-8")
    (root / "src" / "components" / "Button.tsx").write_text("export const Button = 1;", encoding="utf-8")
    (root / "README.md").write_text("# Project\n", encoding="utf-8")
    (root / "node_modules" / "react" / "index.js").write_text("module.exports = {};\n", encoding="utf-8")
    (root / ".hidden" / "secret.py").write_text("x = 1\n", encoding="utf-8")
    return root


def make_response(status_code=200, payload=None, text=None):
    """A stand-in for requests.Response with working raise_for_status()."""
    response = MagicMock()
    response.status_code = status_code
    if payload is not None:
        response.json.return_value = payload
        response.text = json.dumps(payload)
    else:
        response.json.side_effect = ValueError("No JSON")
        response.text = text or ""

    def raise_for_status():
        if status_code >= 400:
            raise requests.exceptions.HTTPError(f"{status_code} Error", response=response)

    response.raise_for_status.side_effect = raise_for_status
    return response
