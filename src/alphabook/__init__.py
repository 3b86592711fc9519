"""
Alphabook

Generates illustrated alphabet storybooks for children: one page per letter,
each paired with an illustration kept visually consistent with the pages
before it.
"""

from .models import Story, StoryContent, StoryPage, StoryStatus, Visibility
from .pipeline import StoryGenerationPipeline
from .sweeper import TimeoutSweeper

__version__ = "0.1.0"

__all__ = [
    "Story",
    "StoryContent",
    "StoryPage",
    "StoryStatus",
    "Visibility",
    "StoryGenerationPipeline",
    "TimeoutSweeper",
]
