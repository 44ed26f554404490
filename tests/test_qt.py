"""Tests for the Qt preview controller."""

from __future__ import annotations

import pytest

QtCore = pytest.importorskip("PySide6.QtCore")

from mdpreview.models import DiagramState, Theme  # noqa: E402
from mdpreview.qt import PreviewController  # noqa: E402
from tests.conftest import FakeEngine, diagram_doc  # noqa: E402


@pytest.fixture(scope="module")
def app():
    return QtCore.QCoreApplication.instance() or QtCore.QCoreApplication([])


def _wait_for_idle(controller: PreviewController, timeout_ms: int = 5000) -> bool:
    loop = QtCore.QEventLoop()
    reached = []

    def on_idle() -> None:
        reached.append(True)
        loop.quit()

    controller.idle.connect(on_idle)
    QtCore.QTimer.singleShot(timeout_ms, loop.quit)
    loop.exec()
    controller.idle.disconnect(on_idle)
    return bool(reached)


def test_controller_fills_only_latest_generation(app, renderer) -> None:
    controller = PreviewController(renderer)
    rendered = []
    updates = []
    controller.rendered.connect(rendered.append)
    controller.diagram_updated.connect(lambda *args: updates.append(args))

    controller.set_document(diagram_doc("A-->B"))
    latest = controller.set_document(diagram_doc("C-->D", "E-->F"))

    assert _wait_for_idle(controller)
    assert len(rendered) == 2
    assert {generation for generation, _id, _state, _payload in updates} == {latest.generation}
    assert {placeholder_id for _gen, placeholder_id, _state, _payload in updates} == {
        p.id for p in latest.diagram_placeholders
    }
    assert all(state == DiagramState.RENDERED.value for _gen, _id, state, _payload in updates)


def test_controller_theme_change_rerenders(app, renderer, fake_engine: FakeEngine) -> None:
    controller = PreviewController(renderer)
    assert controller.set_theme(Theme.DARK) is None

    controller.set_document(diagram_doc("A-->B"))
    assert _wait_for_idle(controller)
    assert [theme for _source, theme in fake_engine.calls] == [Theme.DARK]
