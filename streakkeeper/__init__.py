"""StreakKeeper: habit frequency, streak and progress analytics"""

__version__ = "1.0.0"
