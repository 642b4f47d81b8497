"""
Gemini-backed stylist agents, media encoding and realtime events.
"""
