"""LearnQuest backend: progress tracking and gamification API."""
