"""HTTP API for StreakKeeper"""
