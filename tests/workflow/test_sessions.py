from __future__ import annotations

import pytest

from storyforge.errors import NotFoundError
from storyforge.generation import GenerationJobManager, Paginator, StoryGenerator
from storyforge.models import CoverChoice
from storyforge.workflow import SessionRegistry, WorkflowController, WorkflowStep


class _Writer:
    def write_chapter(self, chapter, structure, *, context):
        return "word " * 10


@pytest.fixture()
def registry(stub_llm_config):
    manager = GenerationJobManager(_Writer(), paginator=Paginator(10), max_workers=1)
    generator = StoryGenerator(stub_llm_config, words_per_page=10)
    yield SessionRegistry(lambda: WorkflowController(generator, manager))
    manager.shutdown()


def test_sessions_are_independent(registry: SessionRegistry) -> None:
    first = registry.create()
    second = registry.create()
    assert first != second
    assert sorted(registry.list_ids()) == sorted([first, second])

    with registry.use(first) as controller:
        controller.select_cover(CoverChoice(style="ink", mood="Calm"))

    with registry.use(first) as controller:
        assert controller.step is WorkflowStep.INTENT
    with registry.use(second) as controller:
        assert controller.step is WorkflowStep.COVER


def test_unknown_and_deleted_sessions_raise(registry: SessionRegistry) -> None:
    with pytest.raises(NotFoundError):
        with registry.use("session_missing"):
            pass

    session_id = registry.create()
    registry.delete(session_id)

    assert registry.list_ids() == []
    with pytest.raises(NotFoundError):
        registry.delete(session_id)
    with pytest.raises(NotFoundError):
        with registry.use(session_id):
            pass
