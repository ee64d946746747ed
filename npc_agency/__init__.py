"""Autonomous NPC action scheduler: goals, capabilities, world triggers and timed actions."""
