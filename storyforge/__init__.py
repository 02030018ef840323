"""Core package for the interactive story generation workflow.

The package is organised leaves first: :mod:`storyforge.preference` and
:mod:`storyforge.matching` hold the pure scoring logic,
:mod:`storyforge.generation` owns pagination and background jobs, and
:mod:`storyforge.workflow` sequences a full session on top of them.
"""

__all__: list[str] = []
